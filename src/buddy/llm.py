"""Model gateway: prompt in, generated text out, via llama.cpp (GGUF)."""

from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

from .errors import ConfigurationFailure, ModelInvocationFailure, ResponseParseFailure
from .grammar import SYSTEM_MARKER, USER_MARKER

logger = logging.getLogger(__name__)


class ModelGateway(Protocol):
    def invoke(self, prompt: str, temperature: float) -> str:
        ...


# -----------------------------
# Types & defaults
# -----------------------------

@dataclass
class GenerationConfig:
    max_new_tokens: int = 512
    top_p: float = 0.95
    top_k: int = 50
    repeat_penalty: float = 1.1
    stop: Optional[List[str]] = None


def _bool(v: Any, default: bool) -> bool:
    if v is None:
        return default
    if isinstance(v, bool):
        return v
    if isinstance(v, str):
        return v.strip().lower() in {"1", "true", "yes", "y", "on"}
    return bool(v)


# -----------------------------
# GGUF wrapper
# -----------------------------

class GGUFModel:
    """Thin wrapper around :mod:`llama_cpp` for raw text completion."""

    def __init__(self, model_path: str, *, generation: Optional[GenerationConfig] = None, **kwargs: Any) -> None:
        """
        Parameters
        ----------
        model_path : str
            Path to .gguf weights.
        generation : GenerationConfig | None
            Sampling defaults other than temperature, which is per call.
        kwargs : Any
            Passed to llama_cpp.Llama with some defaults:
              - n_threads: defaults to os.cpu_count()
              - n_gpu_layers: all layers if GPU offload is supported, else 0
              - use_mmap: default True, retried without mmap on OSError
        """
        # Lazy import so the service and its tests load without the dep.
        from llama_cpp import Llama, llama_supports_gpu_offload  # type: ignore

        threads = kwargs.get("n_threads")
        if threads is None or int(threads) <= 0:
            kwargs["n_threads"] = os.cpu_count() or 1

        if kwargs.get("n_gpu_layers") is None:
            kwargs["n_gpu_layers"] = -1 if llama_supports_gpu_offload() else 0

        use_mmap = _bool(kwargs.get("use_mmap", True), True)
        kwargs["use_mmap"] = use_mmap
        kwargs.setdefault("verbose", False)

        try:
            self._llama = Llama(model_path=model_path, **kwargs)
        except OSError as e:
            if not use_mmap:
                raise
            # Network filesystems sometimes refuse memory-mapping.
            logger.warning("mmap load failed, retrying without mmap: %s", e)
            kwargs["use_mmap"] = False
            self._llama = Llama(model_path=model_path, **kwargs)

        self.model_path = model_path
        # One llama context; concurrent completions must take turns.
        self._lock = threading.Lock()
        self._gen_cfg = generation or GenerationConfig()
        # Stop before the model starts writing the next user or system block.
        self._default_stops = ["</s>", USER_MARKER, SYSTEM_MARKER]

    def invoke(self, prompt: str, temperature: float) -> str:
        """Complete ``prompt`` and return the generated text."""
        cfg = self._gen_cfg
        started = time.perf_counter()
        try:
            with self._lock:
                result = self._llama(
                    prompt,
                    max_tokens=cfg.max_new_tokens,
                    temperature=float(temperature),
                    top_p=cfg.top_p,
                    top_k=cfg.top_k,
                    repeat_penalty=cfg.repeat_penalty,
                    stop=cfg.stop or self._default_stops,
                    stream=False,
                )
        except Exception as e:
            raise ModelInvocationFailure(str(e)) from e

        try:
            text = result["choices"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise ResponseParseFailure(f"unexpected completion shape: {e!r}") from e
        if not isinstance(text, str):
            raise ResponseParseFailure(f"completion text is {type(text).__name__}, expected str")

        logger.info(
            "Model completed: prompt=%d chars, output=%d chars, %.0f ms",
            len(prompt), len(text), (time.perf_counter() - started) * 1000,
        )
        return text


# -----------------------------
# Convenience factory
# -----------------------------

def resolve_model_path(model_cfg: Dict[str, Any]) -> str:
    model_dir = model_cfg.get("model_dir")
    model_path = model_cfg.get("model_path")
    if model_dir and model_path and not os.path.isabs(model_path):
        model_path = os.path.join(model_dir, model_path)
    return model_path or ""


def create_from_config(cfg: Dict[str, Any]) -> GGUFModel:
    """Create a GGUFModel from a config dict (e.g., loaded YAML).

    Raises
    ------
    ConfigurationFailure
        If the weights are missing or llama.cpp is not installed.
    """
    model_cfg = (cfg or {}).get("model", {}) if isinstance(cfg, dict) else {}
    model_path = resolve_model_path(model_cfg)
    if not model_path or not os.path.exists(model_path):
        raise ConfigurationFailure(f"model not found at {model_path!r}")

    params = {
        "n_ctx": model_cfg.get("n_ctx", 4096),
        "n_threads": model_cfg.get("n_threads"),
        "n_gpu_layers": model_cfg.get("n_gpu_layers"),
        "use_mmap": model_cfg.get("use_mmap", True),
    }
    # llama.cpp is picky about None entries
    params = {k: v for k, v in params.items() if v is not None}

    generation = GenerationConfig(
        max_new_tokens=int(model_cfg.get("max_new_tokens", 512)),
        top_p=float(model_cfg.get("top_p", 0.95)),
        top_k=int(model_cfg.get("top_k", 50)),
        repeat_penalty=float(model_cfg.get("repeat_penalty", 1.1)),
        stop=model_cfg.get("stop"),
    )

    try:
        return GGUFModel(model_path=model_path, generation=generation, **params)
    except ImportError as e:
        raise ConfigurationFailure(f"llama-cpp-python is not installed: {e}") from e
    except (OSError, ValueError) as e:
        raise ConfigurationFailure(f"cannot load model {model_path!r}: {e}") from e
