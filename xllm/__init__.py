"""LLM inference building blocks: request types, a batching scheduler, a BPE tokenizer, a simplified decode step and GPT-2 weight loading."""

__version__ = "0.5.0"
__all__ = ["backend_types", "scheduler", "tokenizer", "decode_loop", "weight_loader"]