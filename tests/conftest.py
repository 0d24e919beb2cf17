import multiprocessing
import tempfile
import threading
from pathlib import Path
from typing import Callable, Dict, Optional

import pytest

import underlator.config as config_module

# Keep tests away from the project's own config/config.json
_test_config_dir = Path(tempfile.mkdtemp(prefix="underlator-test-config-"))
config_module.CONFIG_DIR = _test_config_dir
config_module.CONFIG_FILE = _test_config_dir / "config.json"

from underlator.providers.base import GenerateOptions, Provider  # noqa: E402
from underlator.translation.events import ChunkEvent  # noqa: E402
from underlator.worker.process import WorkerHandle, run_worker  # noqa: E402


class ThreadProcess:
    """Process stand-in running the worker loop on a thread."""

    def __init__(self, target, args):
        self.thread = threading.Thread(target=target, args=args, daemon=True)

    def start(self):
        self.thread.start()

    def is_alive(self) -> bool:
        return self.thread.is_alive()

    def join(self, timeout: Optional[float] = None):
        self.thread.join(timeout)


def upper_engine_factory(model_path: Path):
    """Engine uppercasing text; 'boom' fails, 'exit' kills the worker."""
    def translate(text: str, source_language: str, target_language: str, on_partial=None) -> str:
        if text == "boom":
            raise RuntimeError("cannot translate boom")
        if text == "exit":
            raise SystemExit(1)
        return text.upper()
    return translate


def streaming_engine_factory(model_path: Path):
    """Engine reporting its uppercased output one word at a time."""
    def translate(text: str, source_language: str, target_language: str, on_partial=None) -> str:
        words = text.upper().split()
        if on_partial is not None:
            for count in range(1, len(words) + 1):
                on_partial(" ".join(words[:count]))
        return " ".join(words)
    return translate


def failing_engine_factory(model_path: Path):
    raise RuntimeError("weights are corrupted")


def make_thread_worker_factory(engine_factory: Callable = upper_engine_factory):
    """Process factory for WorkerPipelineManager that keeps workers in-process."""
    started = []

    def factory(model_name: str, model_path: Path) -> WorkerHandle:
        parent_conn, child_conn = multiprocessing.Pipe()
        process = ThreadProcess(run_worker, (child_conn, model_name, str(model_path), engine_factory))
        process.start()
        started.append(model_name)
        return WorkerHandle(model_name, model_path, process, parent_conn)

    factory.started = started
    return factory


class FakeProvider(Provider):
    """Provider driven by a handler(options, emit) -> results callable."""

    def __init__(self, handler: Optional[Callable] = None, name: str = "fake", supports_block_mode: bool = True):
        self.handler = handler or self.upper
        self.name = name
        self.supports_block_mode = supports_block_mode
        self.calls = []

    @staticmethod
    def upper(options: GenerateOptions, emit) -> Dict[int, str]:
        results = {}
        for index, text in enumerate(options.texts):
            results[index] = text.upper()
            emit(ChunkEvent(index=index, text=results[index], block=options.block_mode))
        return results

    def generate(self, options: GenerateOptions, emit) -> Dict[int, str]:
        self.calls.append(options)
        return self.handler(options, emit)


@pytest.fixture
def models_dir(tmp_path):
    root = tmp_path / "models"
    for name in ("m1", "m2", "opus-mt-en-ru"):
        (root / name).mkdir(parents=True)
    return root


@pytest.fixture
def coordinator_config(models_dir):
    return {
        "provider": "fake",
        "log_mode": "off",
        "translation": {
            "chunk_delimiter": "🔴",
            "default_mode": "simple",
            "max_contextual_chunks": 5,
        },
        "remote": {"base_url": "http://ollama.test", "model": "qwen3:4b"},
        "local": {"models_dir": str(models_dir), "poll_interval": 0.01, "ready_timeout": 5},
    }
