"""
Unit tests for LocalProvider over in-thread workers
"""

import threading

import pytest

from underlator.exceptions import Cancelled, FragmentError, ModelUnavailable, WorkerCrash
from underlator.providers.base import GenerateOptions
from underlator.providers.local import LocalProvider
from underlator.translation.events import ChunkEvent, ProgressEvent
from underlator.translation.request import CancellationToken
from underlator.worker.manager import WorkerPipelineManager

from conftest import make_thread_worker_factory, streaming_engine_factory


def _manager(models_dir, engine_factory=None):
    factory = make_thread_worker_factory(engine_factory) if engine_factory else make_thread_worker_factory()
    return WorkerPipelineManager(
        config={"models_dir": str(models_dir), "ready_timeout": 5, "poll_interval": 0.01},
        process_factory=factory,
    )


@pytest.fixture
def manager(models_dir):
    manager = _manager(models_dir)
    yield manager
    manager.shutdown()


@pytest.fixture
def provider(manager):
    return LocalProvider(manager=manager, config={"poll_interval": 0.01})


class TestLocalProvider:
    """Tests for LocalProvider.generate"""

    def test_translates_fragments_and_relays_events(self, provider):
        events = []
        options = GenerateOptions(
            texts=["hello", "world"],
            source_language="en",
            target_language="ru",
            model="m1",
            request_id="r1",
        )

        results = provider.generate(options, events.append)

        assert results == {0: "HELLO", 1: "WORLD"}
        assert [event for event in events if isinstance(event, ProgressEvent)] == [
            ProgressEvent(resource="m1", progress=0.0),
            ProgressEvent(resource="m1", progress=100.0),
        ]
        assert [event for event in events if isinstance(event, ChunkEvent)] == [
            ChunkEvent(index=0, text="HELLO"),
            ChunkEvent(index=1, text="WORLD"),
        ]

    def test_default_model_follows_direction(self, provider, manager):
        options = GenerateOptions(texts=["hi"], source_language="en", target_language="ru", request_id="r1")

        assert provider.generate(options, lambda event: None) == {0: "HI"}
        assert manager.current_model == "opus-mt-en-ru"

    def test_missing_direction_model(self, provider):
        options = GenerateOptions(texts=["hi"], source_language="en", target_language="xx", request_id="r1")

        with pytest.raises(ModelUnavailable):
            provider.generate(options, lambda event: None)

    def test_block_mode_failure_carries_indices_and_partial_results(self, provider):
        events = []
        options = GenerateOptions(
            texts=["one", "boom", "three"],
            model="m1",
            block_mode=True,
            request_id="r1",
        )

        with pytest.raises(FragmentError) as exc_info:
            provider.generate(options, events.append)

        assert exc_info.value.failed_indices == [1]
        assert exc_info.value.partial == {0: "ONE", 2: "THREE"}
        chunks = [event for event in events if isinstance(event, ChunkEvent)]
        assert chunks == [ChunkEvent(index=0, text="ONE", block=True), ChunkEvent(index=2, text="THREE", block=True)]

    def test_second_request_reuses_worker(self, provider, manager):
        first_events, second_events = [], []
        provider.generate(GenerateOptions(texts=["a"], model="m1", request_id="r1"), first_events.append)
        provider.generate(GenerateOptions(texts=["b"], model="m1", request_id="r2"), second_events.append)

        assert manager.loads == 1
        assert not any(isinstance(event, ProgressEvent) for event in second_events)

    def test_worker_crash_resets_manager(self, provider, manager):
        options = GenerateOptions(texts=["exit"], model="m1", request_id="r1")

        with pytest.raises(WorkerCrash):
            provider.generate(options, lambda event: None)

        assert manager.current_model is None

        # Next request starts a fresh worker
        assert provider.generate(GenerateOptions(texts=["ok"], model="m1", request_id="r2"), lambda e: None) == {0: "OK"}
        assert manager.loads == 2

    def test_already_cancelled_request_is_not_sent(self, provider, manager):
        token = CancellationToken()
        token.cancel()

        with pytest.raises(Cancelled):
            provider.generate(GenerateOptions(texts=["a"], model="m1", cancel_token=token), lambda e: None)
        assert manager.current_model is None


class TestLocalProviderCancellation:
    """Tests for cancelling an in-flight local request"""

    def test_cancel_mid_request(self, models_dir):
        started = threading.Event()
        release = threading.Event()

        def slow_engine_factory(model_path):
            def translate(text, source_language, target_language, on_partial=None):
                started.set()
                release.wait(5)
                return text.upper()
            return translate

        manager = _manager(models_dir, slow_engine_factory)
        provider = LocalProvider(manager=manager, config={"poll_interval": 0.01})
        token = CancellationToken()
        outcome = {}

        def run():
            try:
                provider.generate(
                    GenerateOptions(texts=["a", "b", "c"], model="m1", request_id="r1", cancel_token=token),
                    lambda event: None,
                )
            except Exception as e:
                outcome["error"] = e

        thread = threading.Thread(target=run, daemon=True)
        thread.start()
        assert started.wait(5)
        token.cancel()
        # Let the provider deliver the cancel before the fragment finishes
        thread.join(0.2)
        release.set()
        thread.join(5)

        assert isinstance(outcome.get("error"), Cancelled)
        # The worker is left clean for the next request
        assert manager.current_model == "m1"
        manager.shutdown()


class TestLocalProviderPartials:
    """Tests for relaying partial worker output"""

    @pytest.fixture
    def streaming_manager(self, models_dir):
        manager = _manager(models_dir, streaming_engine_factory)
        yield manager
        manager.shutdown()

    def test_partials_arrive_as_new_text_only(self, streaming_manager):
        provider = LocalProvider(manager=streaming_manager, config={"poll_interval": 0.01})
        events = []

        results = provider.generate(
            GenerateOptions(texts=["hello big world", "x"], model="m1", request_id="r1"), events.append
        )

        chunks = [(event.index, event.text) for event in events if isinstance(event, ChunkEvent)]
        assert chunks == [(0, "HELLO"), (0, " BIG"), (0, " WORLD"), (1, "X")]
        assert results == {0: "HELLO BIG WORLD", 1: "X"}

    def test_partials_can_be_disabled(self, streaming_manager):
        provider = LocalProvider(manager=streaming_manager, config={"poll_interval": 0.01, "stream_partials": False})
        events = []

        provider.generate(GenerateOptions(texts=["hello big world"], model="m1", request_id="r1"), events.append)

        chunks = [event for event in events if isinstance(event, ChunkEvent)]
        assert chunks == [ChunkEvent(index=0, text="HELLO BIG WORLD")]

    def test_block_mode_partials_are_block_chunks(self, streaming_manager):
        provider = LocalProvider(manager=streaming_manager, config={"poll_interval": 0.01})
        events = []

        provider.generate(
            GenerateOptions(texts=["a b", "c"], model="m1", block_mode=True, request_id="r1"), events.append
        )

        chunks = [event for event in events if isinstance(event, ChunkEvent)]
        assert all(event.block for event in chunks)
        assert [(event.index, event.text) for event in chunks] == [(0, "A"), (0, " B"), (1, "C")]


class TestLocalProviderFromConfig:
    def test_owns_and_closes_its_manager(self, models_dir):
        provider = LocalProvider.from_config({"models_dir": str(models_dir), "poll_interval": 0.01, "ready_timeout": 5})
        provider.manager.process_factory = make_thread_worker_factory()

        assert provider.manager.resolver.models_dir == models_dir
        assert provider.generate(GenerateOptions(texts=["a"], model="m2", request_id="r1"), lambda e: None) == {0: "A"}

        provider.close()
        assert provider.manager.current_model is None

    def test_shared_manager_is_left_running(self, manager):
        provider = LocalProvider(manager=manager, config={"poll_interval": 0.01})
        provider.generate(GenerateOptions(texts=["a"], model="m1", request_id="r1"), lambda e: None)

        provider.close()
        assert manager.current_model == "m1"
