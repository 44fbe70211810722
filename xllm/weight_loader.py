"""GPT-2 weights stored in a flat little-endian binary file with a JSON config header."""

from __future__ import annotations

import re
import struct
from collections.abc import Callable
from dataclasses import dataclass
from typing import BinaryIO

import numpy as np

MAX_TENSOR_NAME = 256

_U32 = struct.Struct("<I")
_INT_RE = re.compile(r"\s*([+-]?\d+)")
_FLOAT_RE = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


class WeightLoadError(Exception):
    """Raised when a weight file or configuration cannot be used."""


@dataclass
class Gpt2Config:
    """GPT-2 model dimensions."""

    vocab_size: int = 50257
    n_positions: int = 1024
    n_embd: int = 768
    n_layer: int = 12
    n_head: int = 12
    n_inner: int = 3072
    head_size: int = 64
    layer_norm_eps: float = float(np.float32(1e-5))


# ── Minimal JSON value lookup ─────────────────────────────────────────────


def _value_after_colon(text: str, start: int) -> str | None:
    colon = text.find(":", start)
    if colon < 0:
        return None
    return text[colon + 1 :].lstrip(" \t")


def _json_get_int(text: str, key: str, default: int) -> int:
    pos = text.find(key)
    if pos < 0:
        pos = text.find(f'"{key}"')
    if pos < 0:
        return default
    rest = _value_after_colon(text, pos)
    if rest is None:
        return default
    match = _INT_RE.match(rest)
    return int(match.group(1)) if match else 0


def _json_get_float(text: str, key: str, default: float) -> float:
    pos = text.find(f'"{key}"')
    if pos < 0:
        return default
    rest = _value_after_colon(text, pos)
    if rest is None:
        return default
    match = _FLOAT_RE.match(rest)
    return float(match.group(1)) if match else 0.0


def _trunc_div(a: int, b: int) -> int:
    quotient = abs(a) // abs(b)
    return quotient if (a >= 0) == (b >= 0) else -quotient


def parse_config(json_text: str) -> Gpt2Config:
    """Read the model dimensions from the config JSON, falling back to GPT-2 small."""
    vocab_size = _json_get_int(json_text, "vocab_size", 50257)
    n_positions = _json_get_int(json_text, "n_positions", 1024)
    n_embd = _json_get_int(json_text, "n_embd", 768)
    n_layer = _json_get_int(json_text, "n_layer", 12)
    n_head = _json_get_int(json_text, "n_head", 12)
    n_inner = _json_get_int(json_text, "n_inner", 4 * n_embd)
    if n_head == 0:
        raise WeightLoadError("n_head must not be zero")
    eps = float(np.float32(_json_get_float(json_text, "layer_norm_eps", 1e-5)))
    return Gpt2Config(
        vocab_size=vocab_size,
        n_positions=n_positions,
        n_embd=n_embd,
        n_layer=n_layer,
        n_head=n_head,
        n_inner=n_inner,
        head_size=_trunc_div(n_embd, n_head),
        layer_norm_eps=eps,
    )


# ── Tensor layout ─────────────────────────────────────────────────────────

_ShapeFn = Callable[[Gpt2Config], tuple[int, ...]]

_GLOBAL_TENSORS: tuple[tuple[str, str, _ShapeFn], ...] = (
    ("transformer.wte.weight", "wte", lambda c: (c.vocab_size, c.n_embd)),
    ("transformer.wpe.weight", "wpe", lambda c: (c.n_positions, c.n_embd)),
    ("transformer.ln_f.weight", "ln_f_weight", lambda c: (c.n_embd,)),
    ("transformer.ln_f.bias", "ln_f_bias", lambda c: (c.n_embd,)),
)

_LAYER_TENSORS: tuple[tuple[str, str, _ShapeFn], ...] = (
    (".ln_1.weight", "ln_1_weight", lambda c: (c.n_embd,)),
    (".ln_1.bias", "ln_1_bias", lambda c: (c.n_embd,)),
    (".attn.c_attn.weight", "attn_c_attn_w", lambda c: (c.n_embd, 3 * c.n_embd)),
    (".attn.c_attn.bias", "attn_c_attn_b", lambda c: (3 * c.n_embd,)),
    (".attn.c_proj.weight", "attn_c_proj_w", lambda c: (c.n_embd, c.n_embd)),
    (".attn.c_proj.bias", "attn_c_proj_b", lambda c: (c.n_embd,)),
    (".ln_2.weight", "ln_2_weight", lambda c: (c.n_embd,)),
    (".ln_2.bias", "ln_2_bias", lambda c: (c.n_embd,)),
    (".mlp.c_fc.weight", "mlp_c_fc_w", lambda c: (c.n_embd, c.n_inner)),
    (".mlp.c_fc.bias", "mlp_c_fc_b", lambda c: (c.n_inner,)),
    (".mlp.c_proj.weight", "mlp_c_proj_w", lambda c: (c.n_inner, c.n_embd)),
    (".mlp.c_proj.bias", "mlp_c_proj_b", lambda c: (c.n_embd,)),
)


def _parse_layer_idx(name: str) -> int:
    pos = name.find(".h.")
    if pos < 0:
        return -1
    match = _INT_RE.match(name[pos + 3 :])
    return int(match.group(1)) if match else 0


def _copy_into(target: np.ndarray, data: np.ndarray, name: str) -> None:
    need = target.size
    if data.size < need:
        raise WeightLoadError(
            f"tensor {name!r} has {data.size} elements, {need} are needed"
        )
    target[...] = data[:need].reshape(target.shape)


@dataclass
class Gpt2Weights:
    """All GPT-2 weight tensors as float32 arrays; per-layer tensors are lists."""

    config: Gpt2Config
    wte: np.ndarray
    wpe: np.ndarray
    ln_f_weight: np.ndarray
    ln_f_bias: np.ndarray
    ln_1_weight: list[np.ndarray]
    ln_1_bias: list[np.ndarray]
    attn_c_attn_w: list[np.ndarray]
    attn_c_attn_b: list[np.ndarray]
    attn_c_proj_w: list[np.ndarray]
    attn_c_proj_b: list[np.ndarray]
    ln_2_weight: list[np.ndarray]
    ln_2_bias: list[np.ndarray]
    mlp_c_fc_w: list[np.ndarray]
    mlp_c_fc_b: list[np.ndarray]
    mlp_c_proj_w: list[np.ndarray]
    mlp_c_proj_b: list[np.ndarray]

    @property
    def n_layer(self) -> int:
        return self.config.n_layer

    def assign(self, name: str, data) -> bool:
        """Copy ``data`` into the tensor ``name`` refers to.

        Returns False when the name points at a layer outside the model.
        Names that match no known tensor are accepted and ignored.
        """
        values = np.asarray(data, dtype=np.float32).reshape(-1)
        for pattern, attr, _ in _GLOBAL_TENSORS:
            if pattern in name:
                _copy_into(getattr(self, attr), values, name)
                return True

        layer = _parse_layer_idx(name)
        if layer < 0 or layer >= self.config.n_layer:
            return False
        for suffix, attr, _ in _LAYER_TENSORS:
            if suffix in name:
                _copy_into(getattr(self, attr)[layer], values, name)
                break
        return True


def alloc_weights(config: Gpt2Config) -> Gpt2Weights:
    """Allocate zero-filled weights for ``config``."""
    dims = (
        config.vocab_size,
        config.n_positions,
        config.n_embd,
        config.n_layer,
        config.n_inner,
    )
    if any(d < 0 for d in dims):
        raise WeightLoadError("model dimensions must not be negative")

    fields: dict[str, object] = {
        attr: np.zeros(shape(config), dtype=np.float32)
        for _, attr, shape in _GLOBAL_TENSORS
    }
    for _, attr, shape in _LAYER_TENSORS:
        fields[attr] = [
            np.zeros(shape(config), dtype=np.float32) for _ in range(config.n_layer)
        ]
    return Gpt2Weights(config=config, **fields)


# ── File reading ──────────────────────────────────────────────────────────


def _read_exact(stream: BinaryIO, size: int, what: str) -> bytes:
    chunk = stream.read(size)
    if len(chunk) != size:
        raise WeightLoadError(f"failed to read {what}")
    return chunk


def _read_u32(stream: BinaryIO, what: str) -> int:
    return _U32.unpack(_read_exact(stream, _U32.size, what))[0]


def _read_tensor(stream: BinaryIO, index: int) -> tuple[str, np.ndarray]:
    what = f"tensor {index}"
    name_len = _read_u32(stream, what)
    if name_len >= MAX_TENSOR_NAME:
        raise WeightLoadError(f"error reading {what}: name of {name_len} bytes is too long")
    name = _read_exact(stream, name_len, what).decode("utf-8", errors="replace")
    data_len = _read_u32(stream, what)
    raw = _read_exact(stream, data_len, what)
    usable = data_len - data_len % 4
    return name, np.frombuffer(raw[:usable], dtype="<f4").astype(np.float32)


def load_weights(path) -> Gpt2Weights:
    """Load GPT-2 weights and their config from a flat binary file."""
    try:
        stream = open(path, "rb")
    except OSError as exc:
        raise WeightLoadError(f"cannot open {str(path)!r}") from exc

    with stream:
        config_len = _read_u32(stream, "config length")
        config_json = _read_exact(stream, config_len, "config JSON").decode(
            "utf-8", errors="replace"
        )
        weights = alloc_weights(parse_config(config_json))
        tensor_count = _read_u32(stream, "tensor count")
        for index in range(tensor_count):
            name, data = _read_tensor(stream, index)
            weights.assign(name, data)
    return weights