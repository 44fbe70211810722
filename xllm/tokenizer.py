"""Byte-level BPE tokenizer (GPT-2 / Llama 3 style)."""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass

MAX_TOKEN_LEN = 128
MAX_ENCODED = 2048

_MAX_BYTES = 4096
_MAX_MERGE_ITERATIONS = 500
_MAX_MERGED_BYTES = 512
_SPACE_MARKER = 0x0120


def _is_direct(b: int) -> bool:
    return 33 <= b <= 126 or 161 <= b <= 172 or 174 <= b <= 255


_INDIRECT_BYTES = tuple(b for b in range(256) if not _is_direct(b))


def byte_to_codepoint(b: int) -> int:
    """Map a raw byte to the printable code point GPT-2 uses for it."""
    if not 0 <= b <= 255:
        raise ValueError(f"not a byte value: {b}")
    if _is_direct(b):
        return b
    return 256 + _INDIRECT_BYTES.index(b)


def codepoint_to_byte(cp: int) -> int | None:
    """Inverse of :func:`byte_to_codepoint`; ``None`` if ``cp`` stands for no byte."""
    if _is_direct(cp):
        return cp
    offset = cp - 256
    if 0 <= offset < len(_INDIRECT_BYTES):
        return _INDIRECT_BYTES[offset]
    return None


def _utf8_length(cp: int) -> int:
    if cp < 0x80:
        return 1
    if cp < 0x800:
        return 2
    if cp < 0x10000:
        return 3
    return 0


def _utf8_decode_one(buf: bytes, pos: int) -> tuple[int, int]:
    """Decode one lenient UTF-8 sequence; invalid bytes yield U+FFFD."""
    c = buf[pos]

    def cont(i: int) -> bool:
        return pos + i < len(buf) and buf[pos + i] & 0xC0 == 0x80

    if c < 0x80:
        return c, 1
    if c & 0xE0 == 0xC0 and cont(1):
        return ((c & 0x1F) << 6) | (buf[pos + 1] & 0x3F), 2
    if c & 0xF0 == 0xE0 and cont(1) and cont(2):
        return (
            ((c & 0x0F) << 12) | ((buf[pos + 1] & 0x3F) << 6) | (buf[pos + 2] & 0x3F),
            3,
        )
    if c & 0xF8 == 0xF0 and cont(1) and cont(2) and cont(3):
        return (
            ((c & 0x07) << 18)
            | ((buf[pos + 1] & 0x3F) << 12)
            | ((buf[pos + 2] & 0x3F) << 6)
            | (buf[pos + 3] & 0x3F),
            4,
        )
    return 0xFFFD, 1


@dataclass(frozen=True)
class BpeMerge:
    """A merge rule; a lower priority is applied first."""

    left: str
    right: str
    priority: int


class Tokenizer:
    """Encodes text to token ids and back using byte-level BPE merges."""

    def __init__(
        self,
        tokens: Iterable[str | None],
        merges: Iterable[str | BpeMerge] = (),
        bos_token_id: int = 1,
        eos_token_id: int = 2,
        pad_token_id: int = -1,
    ) -> None:
        self.vocab: list[str] = [t if t is not None else "" for t in tokens]
        if not self.vocab:
            raise ValueError("vocabulary must not be empty")
        self._ids: dict[str, int] = {}
        for idx, text in enumerate(self.vocab):
            self._ids.setdefault(text, idx)

        self.merges: list[BpeMerge] = []
        for idx, rule in enumerate(merges):
            if isinstance(rule, BpeMerge):
                self.merges.append(rule)
                continue
            if rule is None or " " not in rule:
                continue
            left, right = rule.split(" ", 1)
            self.merges.append(BpeMerge(left, right, idx))

        self._merge_rank: dict[tuple[str, str], int] = {}
        for rule in self.merges:
            self._merge_rank.setdefault((rule.left, rule.right), rule.priority)

        self.bos_token_id = bos_token_id
        self.eos_token_id = eos_token_id
        self.pad_token_id = pad_token_id

        self.byte_token_id: list[int | None] = [
            self._ids.get(chr(byte_to_codepoint(b))) for b in range(256)
        ]

    @property
    def vocab_size(self) -> int:
        return len(self.vocab)

    def token_id(self, text: str) -> int | None:
        """Return the id of a token string, or ``None`` if it is not in the vocabulary."""
        return self._ids.get(text)

    def _best_merge(self, ids: list[int]) -> tuple[int | None, str]:
        best_idx: int | None = None
        best_prio = math.inf
        best_merged = ""
        for p, (a, b) in enumerate(zip(ids, ids[1:])):
            left, right = self.vocab[a], self.vocab[b]
            prio = self._merge_rank.get((left, right))
            if prio is None or prio >= best_prio:
                continue
            best_prio = prio
            best_merged = left + right
            best_idx = p if len(best_merged.encode("utf-8")) < _MAX_MERGED_BYTES else None
        return best_idx, best_merged

    def encode(self, text: str, max_tokens: int = MAX_ENCODED) -> list[int]:
        """Encode text, prefixed with the BOS token when one is set."""
        if max_tokens < 1:
            return []
        out: list[int] = []
        if self.bos_token_id >= 0:
            out.append(self.bos_token_id)

        ids: list[int] = []
        for b in text.encode("utf-8")[:_MAX_BYTES]:
            token = self.byte_token_id[b]
            if token is None:
                raise ValueError(f"byte 0x{b:02X} has no token")
            ids.append(token)

        for _ in range(_MAX_MERGE_ITERATIONS):
            if len(ids) <= 1:
                break
            best_idx, merged = self._best_merge(ids)
            if best_idx is None:
                break
            merged_id = self._ids.get(merged)
            if merged_id is None:
                break
            ids[best_idx : best_idx + 2] = [merged_id]

        out.extend(ids)
        return out[:max_tokens]

    def decode(self, token_ids: Iterable[int], max_len: int | None = None) -> str:
        """Decode token ids to text of at most ``max_len - 1`` UTF-8 bytes."""
        limit = math.inf if max_len is None else max_len
        if limit < 1:
            return ""

        raw = bytearray()
        for i, token in enumerate(token_ids):
            if not 0 <= token < self.vocab_size:
                continue
            if token == self.bos_token_id and i == 0:
                continue
            for ch in self.vocab[token]:
                if len(raw) >= _MAX_BYTES:
                    break
                b = codepoint_to_byte(ord(ch))
                if b is not None:
                    raw.append(b)

        data = bytes(raw)
        out: list[str] = []
        size = 0
        bpos = 0
        while bpos < len(data) and size < limit - 1:
            cp, consumed = _utf8_decode_one(data, bpos)
            bpos += consumed
            if cp == _SPACE_MARKER:
                if size > 0 and out[-1] != " ":
                    out.append(" ")
                    size += 1
                continue
            n = _utf8_length(cp)
            if n > 0 and size + n < limit:
                out.append(chr(cp))
                size += n
        return "".join(out)