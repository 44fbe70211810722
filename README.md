# xllm

Pure-Python building blocks for large-language-model inference:

- `xllm.backend_types` — enums for data types, memory types, backend states,
  instance kinds, version and scheduler policies; dataclasses for tensors,
  model configuration, inference requests and responses, and scheduler
  configuration.
- `xllm.scheduler` — a continuous-batching scheduler with a per-step token
  budget, chunked prefill, priority ordering and preemption.
- `xllm.tokenizer` — a byte-level BPE tokenizer (GPT-2 / Qwen2 style).
- `xllm.decode_loop` — a decode state with paged KV-cache buffers and a
  simplified single-token decode step with greedy selection.
- `xllm.weight_loader` — GPT-2 weights from a flat binary file (config JSON
  followed by named float32 tensors).

The only runtime dependency is `numpy`.

## Installation

```
pip install .
```

For running the test suite:

```
pip install ".[test]"
pytest
```

## Types

```python
from xllm.backend_types import DataType, InferResponse, datatype_str

resp = InferResponse("req-42")
out = resp.set_output("logits", DataType.FP32, (1, 256), None, 1024)
print(resp.output_count, out.dims_count, datatype_str(DataType.FP32))  # 1 2 FP32
```

`datatype_str`, `memory_type_str` and `backend_state_str` return the enum
member's name, or `"UNKNOWN"` for a value outside the enum.
`InferResponse.set_output` raises `ValueError` for an empty name or a negative
`byte_size`, and copies any data it is given.

## Scheduler

```python
from xllm.backend_types import SchedulerConfig, SchedulerPolicy
from xllm.scheduler import Scheduler

sched = Scheduler(SchedulerConfig(policy=SchedulerPolicy.DYNAMIC,
                                  max_preferred_batch_size=16,
                                  max_queue_size=128))
sched.enqueue_tokenized("req-1", 0, [1, 2, 3], 20)

for item in sched.schedule_step():
    print(item.request.request_id, item.num_tokens)

sched.complete_request("req-1")
print(sched.completed_count(), sched.avg_batch_size())
```

- With a `SchedulerConfig`, `max_preferred_batch_size` caps the number of
  running requests and `max_queue_size` is the token budget per step
  (4096 when it is 0). Chunked prefill is on unless the policy is `SEQUENCE`;
  `preserve_ordering` stops admission when a whole prompt does not fit.
- Passing `None` uses the defaults: 32 sequences, a 2048-token budget,
  chunked prefill, `DYNAMIC` policy.
- Under `DYNAMIC`, waiting requests are kept sorted by priority (lower value
  first), then arrival time.
- `schedule_step()` returns a list of `ScheduledItem(request, num_tokens)`;
  an empty list means there was no work.
- `poll(execute)` runs one step and passes each scheduled request that came
  from `enqueue(InferRequest)` to the `execute` callable.
- `complete_request` returns `False` for an unknown id.
- Enqueueing `None`, an empty prompt, or a duplicate request id, or exceeding
  2048 tracked requests, raises `SchedulerError`.
- `policy` and `token_budget` are plain attributes that may be changed between
  steps.

## Tokenizer

```python
from xllm.tokenizer import Tokenizer, byte_to_codepoint

vocab = [chr(byte_to_codepoint(b)) for b in range(256)]
vocab += ["he", "ll", "hell", "hello", "<s>"]
merges = ["h e", "l l", "he ll", "hell o"]

tok = Tokenizer(vocab, merges, bos_token_id=260, eos_token_id=260)
ids = tok.encode("hello", 64)   # [260, 259]
text = tok.decode(ids, 256)     # "hello"
```

`tokens` is the vocabulary in id order, written in the GPT-2 byte-to-unicode
alphabet; `merges` are `"left right"` strings (or `BpeMerge` objects) in
priority order. `encode` prepends the BOS token when `bos_token_id >= 0`,
truncates to `max_tokens`, and raises `ValueError` for a byte that has no
token. `decode` skips ids outside the vocabulary and a BOS token in first
position, turns the `Ġ` space marker into a single space, and keeps the output
under `max_len` UTF-8 bytes.

## Decode step

```python
import numpy as np
from xllm.decode_loop import DecodeState

state = DecodeState(num_layers=2, dim=4, num_heads=2, ffn_dim=16,
                    max_seq_len=8, page_size=4)
embed = np.random.rand(10, 4).astype(np.float32)    # [vocab, dim]
lm_head = np.random.rand(4, 10).astype(np.float32)  # [dim, vocab]
result = state.step(3, embed, lm_head, vocab_size=10)
print(result.token_id, result.logits.shape)
```

`rms_norm` and `argmax` are available as standalone helpers.

## Weights

```python
from xllm.weight_loader import load_weights

weights = load_weights("gpt2.bin")
print(weights.config.n_layer, weights.config.n_embd, weights.wte.shape)
```

The file holds a little-endian `u32` config length, the config JSON, a `u32`
tensor count, then for each tensor a `u32` name length, the name, a `u32` data
length in bytes and the float32 data. Tensors are matched by GPT-2 names such
as `transformer.wte.weight` or `transformer.h.0.attn.c_attn.weight`; unknown
names are ignored. `parse_config`, `alloc_weights` and `Gpt2Weights.assign`
can be used on their own. A missing, malformed or truncated file, a tensor
with too few elements, or `n_head` of 0 raises `WeightLoadError`.

## What this package does not do

- It has no backend manager: nothing loads backend libraries, registers
  models, applies version policies or reports server or model health. The
  types in `xllm.backend_types` describe those things but nothing acts on them.
- It does not read model files for the tokenizer; the vocabulary and merges
  are passed to `Tokenizer` by the caller.
- `DecodeState.step` is not a real transformer forward pass: each layer
  applies a GELU-based residual update with no attention, and the KV-cache
  buffers are allocated but never written.
- There is no command-line tool and no server.