"""Transformer inference toolkit: GGUF reading, KV cache, quantization, speculative decoding and kernels."""

__version__ = "1.0.0"

__all__ = [
    "gguf",
    "model_loader",
    "kv_cache",
    "tokenizers",
    "inference",
    "quantization",
    "speculative",
    "kernels",
]