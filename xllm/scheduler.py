"""Continuous batching scheduler: request queue, dynamic batching, preemption."""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import IntEnum

from xllm.backend_types import InferRequest, SchedulerConfig, SchedulerPolicy

MAX_REQUESTS = 2048
MAX_RUNNING = 128

_DEFAULT_MAX_NUM_SEQS = 32
_DEFAULT_TOKEN_BUDGET = 2048
_CONFIG_TOKEN_BUDGET = 4096
_DEFAULT_MAX_OUTPUT_TOKENS = 256


class RequestStatus(IntEnum):
    """Lifecycle state of a scheduled request."""

    WAITING = 0
    RUNNING = 1
    PREEMPTED = 2
    FINISHED = 3


class SchedulerError(Exception):
    """Raised when a request cannot be accepted by the scheduler."""


def _now_us() -> int:
    return time.monotonic_ns() // 1000


@dataclass(eq=False)
class SchedRequest:
    """A request tracked by the scheduler."""

    request_id: str
    priority: int = 0
    prompt_length: int = 0
    max_output_tokens: int = _DEFAULT_MAX_OUTPUT_TOKENS
    token_ids: tuple[int, ...] = ()
    infer_request: InferRequest | None = None
    status: RequestStatus = RequestStatus.WAITING
    arrival_time_us: int = 0
    num_computed_tokens: int = 0
    num_output_tokens: int = 0
    num_preemptions: int = 0
    is_prefill_chunk: bool = False

    def sort_key(self) -> tuple[int, int]:
        """Lower priority value first, then earlier arrival."""
        return (self.priority, self.arrival_time_us)


@dataclass(frozen=True)
class ScheduledItem:
    """A request chosen in one scheduling step with its token budget."""

    request: SchedRequest
    num_tokens: int


class Scheduler:
    """Schedules running requests first, then admits waiting ones within a token budget."""

    def __init__(self, config: SchedulerConfig | None = None) -> None:
        self._requests: dict[str, SchedRequest] = {}
        self._running: list[SchedRequest] = []
        self._waiting: list[SchedRequest] = []

        if config is not None:
            self.max_num_seqs = config.max_preferred_batch_size
            self.token_budget = (
                config.max_queue_size if config.max_queue_size > 0 else _CONFIG_TOKEN_BUDGET
            )
            self.enable_chunked_prefill = config.policy != SchedulerPolicy.SEQUENCE
            self.policy = config.policy
            self.reserve_full_isl = config.preserve_ordering
        else:
            self.max_num_seqs = _DEFAULT_MAX_NUM_SEQS
            self.token_budget = _DEFAULT_TOKEN_BUDGET
            self.enable_chunked_prefill = True
            self.policy = SchedulerPolicy.DYNAMIC
            self.reserve_full_isl = False
        self.long_prefill_token_threshold = 0

        self._completed = 0
        self._preempted = 0
        self._total_tokens = 0
        self._steps = 0

    # ── Admission ─────────────────────────────────────────────────────

    def _admit(self, sreq: SchedRequest) -> SchedRequest:
        if len(self._requests) >= MAX_REQUESTS:
            raise SchedulerError("request table is full")
        if sreq.request_id in self._requests:
            raise SchedulerError(f"duplicate request id {sreq.request_id!r}")
        if len(self._waiting) >= MAX_REQUESTS:
            raise SchedulerError("waiting queue is full")
        sreq.arrival_time_us = _now_us()
        self._requests[sreq.request_id] = sreq
        self._waiting.append(sreq)
        if self.policy == SchedulerPolicy.DYNAMIC:
            self._waiting.sort(key=SchedRequest.sort_key)
        return sreq

    def enqueue(self, request: InferRequest | None) -> SchedRequest:
        """Queue an untokenized inference request."""
        if request is None:
            raise SchedulerError("request must not be None")
        return self._admit(
            SchedRequest(
                request_id=request.request_id,
                priority=request.priority,
                infer_request=request,
            )
        )

    def enqueue_tokenized(
        self,
        request_id: str,
        priority: int,
        token_ids: Iterable[int],
        max_output_tokens: int,
    ) -> SchedRequest:
        """Queue a request whose prompt is already tokenized."""
        tokens = tuple(token_ids)
        if not request_id:
            raise SchedulerError("request id must not be empty")
        if not tokens:
            raise SchedulerError("token_ids must not be empty")
        return self._admit(
            SchedRequest(
                request_id=request_id,
                priority=priority,
                prompt_length=len(tokens),
                max_output_tokens=max_output_tokens,
                token_ids=tokens,
            )
        )

    # ── Scheduling ────────────────────────────────────────────────────

    def _preempt(self, req: SchedRequest) -> None:
        req.status = RequestStatus.PREEMPTED
        req.num_computed_tokens = 0
        req.num_preemptions += 1
        self._preempted += 1
        if len(self._waiting) < MAX_REQUESTS:
            self._waiting.insert(0, req)

    def _clip_prefill(self, num_new_tokens: int, budget: int) -> int:
        threshold = self.long_prefill_token_threshold
        if threshold > 0 and num_new_tokens > threshold:
            num_new_tokens = threshold
        return min(num_new_tokens, budget)

    def schedule_step(self) -> list[ScheduledItem]:
        """Run one scheduling iteration; an empty list means there was no work."""
        budget = self.token_budget
        scheduled: list[ScheduledItem] = []

        # Running requests keep their slot first.
        idx = 0
        while idx < len(self._running) and budget > 0:
            req = self._running[idx]
            if req.num_computed_tokens == 0:
                num_new = req.prompt_length
                if self.enable_chunked_prefill:
                    num_new = self._clip_prefill(num_new, budget)
                elif num_new > budget:
                    self._preempt(req)
                    del self._running[idx]
                    continue
            else:
                num_new = 1
            if num_new == 0:
                idx += 1
                continue
            num_new = min(num_new, budget)
            scheduled.append(ScheduledItem(req, num_new))
            budget -= num_new
            idx += 1

        # Then admit waiting requests.
        running_limit = min(self.max_num_seqs, MAX_RUNNING)
        processed = 0
        while processed < len(self._waiting) and budget > 0:
            if len(self._running) >= running_limit:
                break
            req = self._waiting[processed]
            processed += 1
            if req.status == RequestStatus.FINISHED:
                continue

            num_new = max(req.prompt_length - req.num_computed_tokens, 0) or 1
            if self.enable_chunked_prefill:
                num_new = self._clip_prefill(num_new, budget)
            elif num_new > budget:
                if self.reserve_full_isl:
                    break
                num_new = budget
            if num_new == 0:
                continue

            scheduled.append(ScheduledItem(req, num_new))
            budget -= num_new
            self._running.append(req)
            req.status = RequestStatus.RUNNING
            req.is_prefill_chunk = req.num_computed_tokens + num_new < req.prompt_length

        del self._waiting[:processed]

        for item in scheduled:
            req = item.request
            req.num_computed_tokens += item.num_tokens
            self._total_tokens += item.num_tokens
            if (
                req.num_computed_tokens >= req.prompt_length + req.num_output_tokens
                and req.num_output_tokens >= req.max_output_tokens
            ):
                req.status = RequestStatus.FINISHED
                self._completed += 1

        self._running = [r for r in self._running if r.status != RequestStatus.FINISHED]
        self._steps += 1
        return scheduled

    def complete_request(self, request_id: str) -> bool:
        """Mark a request finished; returns False if the id is unknown."""
        req = self._requests.get(request_id)
        if req is None:
            return False
        req.status = RequestStatus.FINISHED
        self._completed += 1
        if req in self._running:
            self._running.remove(req)
        return True

    def poll(
        self, execute: Callable[[InferRequest], object] | None = None
    ) -> list[ScheduledItem]:
        """Run one step and pass each scheduled inference request to ``execute``."""
        scheduled = self.schedule_step()
        if execute is not None:
            for item in scheduled:
                if item.request.infer_request is not None:
                    execute(item.request.infer_request)
        return scheduled

    # ── Statistics ────────────────────────────────────────────────────

    def completed_count(self) -> int:
        return self._completed

    def queued_count(self) -> int:
        return len(self._waiting)

    def running_count(self) -> int:
        return len(self._running)

    def waiting_count(self) -> int:
        return len(self._waiting)

    def preempted_count(self) -> int:
        return self._preempted

    def avg_batch_size(self) -> float:
        """Average number of tokens scheduled per step."""
        if self._steps == 0:
            return 0.0
        return self._total_tokens / self._steps