"""
Translation engines run inside the worker process.

An engine factory takes the local model directory and returns a callable
``translate(text, source_language, target_language, on_partial=None) -> str``.
Engines that can stream call ``on_partial`` with the text generated so far.
Factories are referenced in config as "module:function" so the worker process
can import them by name.
"""

import importlib
import threading
from pathlib import Path
from typing import Callable, Optional

from underlator.logger import get_logger

logger = get_logger(__name__)

PartialCallback = Callable[[str], None]
Engine = Callable[..., str]
EngineFactory = Callable[[Path], Engine]


def load_engine_factory(spec: str) -> EngineFactory:
    """Import an engine factory from a "module:function" spec."""
    module_name, _, attribute = (spec or "").partition(":")
    if not module_name or not attribute:
        raise ValueError(f"Invalid engine spec {spec!r}, expected 'module:function'")

    module = importlib.import_module(module_name)
    factory = getattr(module, attribute, None)
    if not callable(factory):
        raise ValueError(f"Engine factory {spec!r} is not callable")
    return factory


def transformers_engine(model_path: Path, max_length: int = 512, num_beams: int = 4) -> Engine:
    """
    Seq2seq translation model loaded from a local directory
    (MarianMT/OPUS-MT, NLLB, M2M100).

    With ``on_partial`` the model decodes greedily through a
    TextIteratorStreamer and reports the text generated so far; streamers
    cannot be combined with beam search.
    """
    from transformers import AutoTokenizer, AutoModelForSeq2SeqLM, TextIteratorStreamer
    import torch

    device = "cuda" if torch.cuda.is_available() else "cpu"
    logger.info(f"Loading {model_path.name} on {device}")

    tokenizer = AutoTokenizer.from_pretrained(str(model_path))
    model = AutoModelForSeq2SeqLM.from_pretrained(
        str(model_path),
        torch_dtype=torch.float16 if device == "cuda" else torch.float32,
        low_cpu_mem_usage=True,
    ).to(device)
    model.eval()

    def generate(**kwargs):
        # Grad mode is per thread
        with torch.no_grad():
            return model.generate(**kwargs)

    def translate(
        text: str,
        source_language: str,
        target_language: str,
        on_partial: Optional[PartialCallback] = None,
    ) -> str:
        if not text.strip():
            return ""

        # Multilingual models (NLLB, M2M100) take the languages from the tokenizer
        if source_language and hasattr(tokenizer, "src_lang"):
            tokenizer.src_lang = source_language
        if target_language and hasattr(tokenizer, "tgt_lang"):
            tokenizer.tgt_lang = target_language

        inputs = tokenizer(text, return_tensors="pt", truncation=True, max_length=max_length)
        inputs = {key: value.to(device) for key, value in inputs.items()}

        gen_kwargs = dict(inputs, max_length=max_length)
        if target_language:
            target_id = tokenizer.convert_tokens_to_ids(target_language)
            if target_id is not None and target_id != tokenizer.unk_token_id:
                gen_kwargs["forced_bos_token_id"] = target_id

        if on_partial is None:
            outputs = generate(num_beams=num_beams, **gen_kwargs)
            return tokenizer.batch_decode(outputs, skip_special_tokens=True)[0]

        streamer = TextIteratorStreamer(tokenizer, skip_prompt=True, skip_special_tokens=True)
        thread = threading.Thread(
            target=generate,
            kwargs=dict(gen_kwargs, num_beams=1, streamer=streamer),
            daemon=True,
        )
        thread.start()

        generated = ""
        for piece in streamer:
            generated += piece
            if generated.strip():
                on_partial(generated.strip())
        thread.join()
        return generated.strip()

    return translate
