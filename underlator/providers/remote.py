"""
Remote provider: Ollama-compatible HTTP inference server.

Each fragment is sent as its own streamed POST {base_url}/api/generate call.
Calls for one request run concurrently; every response body is decoded with
its own StreamDecoder and each token is reported as a chunk event for the
fragment's index.
"""

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Dict, List, Optional

import httpx

from underlator.config import load_config, DEFAULT_OLLAMA_URL, DEFAULT_REMOTE_MODEL
from underlator.exceptions import (
    Cancelled,
    FragmentError,
    InvalidRequest,
    TranslationError,
    TransportError,
)
from underlator.logger import get_logger
from underlator.providers.base import Emit, GenerateOptions, Provider
from underlator.translation import prompts
from underlator.translation.events import ChunkEvent
from underlator.translation.stream import StreamDecoder
from underlator.translation.think import strip_think

logger = get_logger(__name__)


def get_httpx_timeout(timeout_config: Any) -> httpx.Timeout:
    """
    Convert timeout configuration to httpx.Timeout object.

    Args:
        timeout_config: Either a number (read timeout) or a dict with
            connect, write, read, pool keys

    Returns:
        httpx.Timeout object
    """
    if isinstance(timeout_config, dict):
        return httpx.Timeout(
            connect=timeout_config.get('connect', 10.0),
            write=timeout_config.get('write', 60.0),
            read=timeout_config.get('read', 120.0),
            pool=timeout_config.get('pool', 10.0),
        )
    else:
        timeout_value = float(timeout_config) if timeout_config else 120.0
        return httpx.Timeout(
            connect=10.0,
            write=60.0,
            read=timeout_value,
            pool=10.0,
        )


def handle_http_error(e: httpx.HTTPStatusError, provider: str):
    """Handle HTTP errors with detailed messages."""
    status_code = e.response.status_code
    error_text = "Unknown error"

    try:
        error_json = e.response.json()
        if isinstance(error_json, dict) and "error" in error_json:
            error_detail = error_json["error"]
            if isinstance(error_detail, dict):
                error_text = error_detail.get("message", str(error_detail))
            else:
                error_text = str(error_detail)
    except Exception:
        error_text = e.response.text[:500] if e.response.text else "No details"

    raise TransportError(
        f"{provider} API error ({status_code}): {error_text}",
        details={"status_code": status_code},
    )


class RemoteProvider(Provider):
    """Ollama /api/generate client."""

    name = "remote"
    supports_block_mode = False

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        transport: Optional[httpx.BaseTransport] = None,
        strip_reasoning: Optional[bool] = None,
    ):
        full_config = load_config() if config is None else None
        remote_config = config if config is not None else full_config.get("remote", {})
        self.base_url = (remote_config.get("base_url") or DEFAULT_OLLAMA_URL).rstrip("/")
        self.model = remote_config.get("model") or DEFAULT_REMOTE_MODEL
        self.timeout = get_httpx_timeout(remote_config.get("timeout", 120))
        self.max_concurrency = max(1, int(remote_config.get("max_concurrency", 8)))
        self.options = dict(remote_config.get("options") or {})
        self.transport = transport
        if strip_reasoning is None:
            translation_config = (full_config or {}).get("translation", {})
            strip_reasoning = translation_config.get("strip_think_tags", True)
        self.strip_reasoning = strip_reasoning

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout, transport=self.transport)

    def _build_prompts(self, options: GenerateOptions) -> List[str]:
        if options.contextual:
            return [
                prompts.build_contextual_prompt(
                    options.texts[0],
                    options.source_language,
                    options.target_language,
                    options.delimiter,
                    options.chunk_count,
                )
            ]
        return [prompts.build_fragment_prompt(options, text) for text in options.texts]

    def generate(self, options: GenerateOptions, emit: Emit) -> Dict[int, str]:
        if options.block_mode:
            raise InvalidRequest("Block mode is not supported by the remote provider")

        model = options.model or self.model
        if not model:
            raise InvalidRequest("Ollama model is not specified")

        fragment_prompts = self._build_prompts(options)
        results: Dict[int, str] = {}
        failed: Dict[int, str] = {}
        results_lock = threading.Lock()

        logger.debug(f"Sending {len(fragment_prompts)} request(s) to {self.base_url} (model: {model})")

        with self._client() as client:
            workers = min(len(fragment_prompts), self.max_concurrency) or 1
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ollama-fragment") as executor:
                futures = {
                    executor.submit(
                        self._stream_fragment, client, index, prompt, model, options, emit, results, results_lock
                    ): index
                    for index, prompt in enumerate(fragment_prompts)
                }
                for future in as_completed(futures):
                    index = futures[future]
                    try:
                        future.result()
                    except Cancelled:
                        pass
                    except TranslationError as e:
                        logger.error(f"Fragment {index} failed: {e}")
                        failed[index] = str(e)
                    except Exception as e:
                        logger.exception(f"Fragment {index} failed unexpectedly: {e}")
                        failed[index] = f"{type(e).__name__}: {e}"

        options.cancel_token.raise_if_cancelled()

        if failed:
            summary = "; ".join(f"#{index}: {message}" for index, message in sorted(failed.items()))
            raise FragmentError(
                f"{len(failed)} of {len(fragment_prompts)} fragment(s) failed: {summary}",
                failed=failed,
                partial=results,
                code=TransportError.code_default,
            )

        if self.strip_reasoning:
            results = {index: strip_think(text).strip() for index, text in results.items()}
        return results

    def _stream_fragment(
        self,
        client: httpx.Client,
        index: int,
        prompt: str,
        model: str,
        options: GenerateOptions,
        emit: Emit,
        results: Dict[int, str],
        results_lock: threading.Lock,
    ) -> None:
        token = options.cancel_token
        token.raise_if_cancelled()

        body = {
            "model": model,
            "prompt": prompt,
            "stream": True,
        }
        if self.options:
            body["options"] = self.options

        pieces: List[str] = []

        def on_token(text: str):
            if token.cancelled:
                return
            pieces.append(text)
            with results_lock:
                results[index] = "".join(pieces)
            emit(ChunkEvent(index=index, text=text))

        def on_record(record: Dict[str, Any]):
            if record.get("error"):
                raise TransportError(f"Ollama stream error: {record['error']}")

        decoder = StreamDecoder(on_token=on_token, on_record=on_record)
        url = f"{self.base_url}/api/generate"

        try:
            with client.stream("POST", url, json=body) as response:
                remove_callback = token.on_cancel(response.close)
                try:
                    if response.status_code >= 400:
                        response.read()
                        response.raise_for_status()
                    for chunk in response.iter_bytes():
                        token.raise_if_cancelled()
                        decoder.feed(chunk)
                    decoder.flush()
                finally:
                    remove_callback()
        except TranslationError:
            raise
        except httpx.HTTPStatusError as e:
            handle_http_error(e, "Ollama")
        except httpx.TimeoutException:
            raise TransportError("Ollama API request timeout")
        except Exception as e:
            if token.cancelled:
                raise Cancelled()
            raise TransportError(f"Ollama API call failed: {e}")

        token.raise_if_cancelled()
        with results_lock:
            results[index] = "".join(pieces)
        logger.debug(f"Fragment {index}: received {len(results[index])} chars ({decoder.records} records)")

    def list_models(self) -> List[str]:
        """Names of the models the server has pulled (GET /api/tags)."""
        try:
            with self._client() as client:
                response = client.get(f"{self.base_url}/api/tags")
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as e:
            handle_http_error(e, "Ollama")
        except httpx.TimeoutException:
            raise TransportError("Ollama API request timeout")
        except httpx.HTTPError as e:
            raise TransportError(f"Ollama API call failed: {e}")

        return [model.get("name", "") for model in payload.get("models", []) if model.get("name")]

    def is_available(self) -> bool:
        """Health check: does the server answer at all."""
        try:
            with self._client() as client:
                response = client.get(f"{self.base_url}/api/version")
                return response.status_code == 200
        except httpx.HTTPError:
            return False
