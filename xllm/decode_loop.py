"""Simplified autoregressive decode step with a paged KV-cache layout."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

_RMS_EPS = np.float32(1e-5)
_GELU_COEF = np.float32(0.79788456)
_GELU_CUBIC = np.float32(0.044715)
_RESIDUAL_SCALE = np.float32(0.1)


def rms_norm(x) -> np.ndarray:
    """Scale ``x`` by the inverse of its root mean square."""
    arr = np.asarray(x, dtype=np.float32)
    if arr.size == 0:
        raise ValueError("rms_norm needs at least one element")
    mean_sq = np.float32(np.sum(arr * arr, dtype=np.float32) / np.float32(arr.size))
    return arr * np.float32(1.0 / np.sqrt(mean_sq + _RMS_EPS))


def argmax(logits) -> int:
    """Index of the largest logit; the first one wins a tie."""
    arr = np.asarray(logits)
    if arr.size == 0:
        raise ValueError("argmax of empty logits")
    return int(np.argmax(arr))


@dataclass
class StepResult:
    """Outcome of one decode step."""

    token_id: int
    hidden: np.ndarray
    logits: np.ndarray


class DecodeState:
    """Model dimensions and the per-layer paged KV-cache buffers."""

    def __init__(
        self,
        num_layers: int,
        dim: int,
        num_heads: int,
        ffn_dim: int,
        max_seq_len: int,
        page_size: int,
    ) -> None:
        if num_layers < 0 or dim <= 0 or ffn_dim < 0 or max_seq_len < 0:
            raise ValueError("dimensions must be positive")
        if num_heads <= 0:
            raise ValueError("num_heads must be positive")
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self.num_layers = num_layers
        self.dim = dim
        self.num_heads = num_heads
        self.head_dim = dim // num_heads
        self.ffn_dim = ffn_dim
        self.page_size = page_size

        max_pages = -(-max_seq_len // page_size)
        cache_per_layer = max_pages * page_size * num_heads * self.head_dim
        self.key_cache = np.zeros(num_layers * cache_per_layer, dtype=np.float32)
        self.value_cache = np.zeros(num_layers * cache_per_layer, dtype=np.float32)
        self.page_table = np.full(num_layers * max_seq_len, -1, dtype=np.int32)

    def step(self, token_id: int, embed_weight, lm_head_weight, vocab_size: int) -> StepResult:
        """Embed ``token_id``, run the layers and project to ``vocab_size`` logits."""
        if vocab_size <= 0:
            raise ValueError("vocab_size must be positive")
        embed = np.asarray(embed_weight, dtype=np.float32).reshape(-1)
        lm_head = np.asarray(lm_head_weight, dtype=np.float32).reshape(-1)
        dim = self.dim
        if token_id < 0 or (token_id + 1) * dim > embed.size:
            raise ValueError(f"token id {token_id} is outside the embedding table")
        if lm_head.size < dim * vocab_size:
            raise ValueError("lm_head_weight is smaller than dim * vocab_size")

        hidden = embed[token_id * dim : (token_id + 1) * dim].copy()
        for _ in range(self.num_layers):
            inner = _GELU_COEF * (hidden + _GELU_CUBIC * hidden * hidden * hidden)
            gelu = np.float32(0.5) * hidden * (np.float32(1.0) + np.tanh(inner))
            hidden = hidden + _RESIDUAL_SCALE * gelu

        logits = hidden @ lm_head[: dim * vocab_size].reshape(dim, vocab_size)
        logits = logits.astype(np.float32)
        return StepResult(token_id=argmax(logits), hidden=hidden, logits=logits)