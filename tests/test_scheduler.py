import pytest

from xllm.backend_types import InferRequest, SchedulerConfig, SchedulerPolicy
from xllm.scheduler import (
    MAX_REQUESTS,
    RequestStatus,
    Scheduler,
    SchedulerError,
)


def _sched(**kwargs) -> Scheduler:
    return Scheduler(SchedulerConfig(**kwargs))


def test_default_scheduler_settings():
    s = Scheduler()
    assert s.token_budget == 2048
    assert s.max_num_seqs == 32
    assert s.policy == SchedulerPolicy.DYNAMIC


def test_config_settings():
    s = _sched(policy=SchedulerPolicy.DYNAMIC, max_preferred_batch_size=32,
               max_queue_delay_ms=100.0, preserve_ordering=True,
               priority_levels=1, max_queue_size=2048)
    assert s.token_budget == 2048
    assert s.max_num_seqs == 32
    assert s.reserve_full_isl is True


def test_config_zero_queue_size_uses_4096():
    s = _sched(max_preferred_batch_size=16)
    assert s.token_budget == 4096


def test_enqueue_single():
    s = _sched(max_preferred_batch_size=16)
    s.enqueue(InferRequest(request_id="req-001", batch_size=1, priority=0))
    assert s.queued_count() == 1


def test_enqueue_multiple():
    s = _sched(max_preferred_batch_size=16)
    for i in range(10):
        s.enqueue(InferRequest(request_id=f"req-{i:03d}", priority=i))
    assert s.queued_count() == 10


def test_enqueue_duplicate():
    s = _sched()
    req = InferRequest(request_id="dup")
    s.enqueue(req)
    with pytest.raises(SchedulerError):
        s.enqueue(req)


def test_enqueue_none():
    s = _sched()
    with pytest.raises(SchedulerError):
        s.enqueue(None)


def test_enqueue_tokenized():
    s = _sched(max_preferred_batch_size=16)
    s.enqueue_tokenized("tok-req", 0, list(range(1, 11)), 50)
    assert s.waiting_count() == 1
    assert s.running_count() == 0


def test_enqueue_tokenized_empty_tokens():
    s = _sched()
    with pytest.raises(SchedulerError):
        s.enqueue_tokenized("empty", 0, [], 10)


def test_schedule_step():
    s = _sched(max_preferred_batch_size=16, max_queue_size=128)
    s.enqueue_tokenized("small-req", 0, [1, 2, 3], 20)
    s.enqueue_tokenized("large-req", 1, list(range(100)), 50)
    items = s.schedule_step()
    assert [(i.request.request_id, i.num_tokens) for i in items] == [
        ("small-req", 3),
        ("large-req", 100),
    ]
    assert s.running_count() == 2
    assert s.waiting_count() == 0
    assert all(i.request.status == RequestStatus.RUNNING for i in items)
    assert s.avg_batch_size() == 103.0


def test_chunked_prefill_and_decode():
    s = _sched(max_preferred_batch_size=16, max_queue_size=50)
    s.enqueue_tokenized("big", 0, list(range(100)), 10)
    first = s.schedule_step()
    assert len(first) == 1
    assert first[0].num_tokens == 50
    assert first[0].request.is_prefill_chunk is True
    second = s.schedule_step()
    assert [(i.request.request_id, i.num_tokens) for i in second] == [("big", 1)]
    assert second[0].request.num_computed_tokens == 51


def test_priority_ordering():
    s = _sched(max_preferred_batch_size=16)
    s.enqueue_tokenized("low", 5, [1], 10)
    s.enqueue_tokenized("high", 1, [1], 10)
    items = s.schedule_step()
    assert [i.request.request_id for i in items] == ["high", "low"]


def test_sequence_policy_keeps_fifo_and_clips_to_budget():
    s = _sched(policy=SchedulerPolicy.SEQUENCE, max_preferred_batch_size=4,
               max_queue_size=10)
    s.enqueue_tokenized("a", 9, list(range(20)), 10)
    s.enqueue_tokenized("b", 0, [1], 10)
    items = s.schedule_step()
    assert [(i.request.request_id, i.num_tokens) for i in items] == [("a", 10)]
    assert s.waiting_count() == 1


def test_max_num_seqs_limit():
    s = _sched(max_preferred_batch_size=2)
    for name in ("a", "b", "c"):
        s.enqueue_tokenized(name, 0, [1, 2], 10)
    items = s.schedule_step()
    assert len(items) == 2
    assert s.running_count() == 2
    assert s.waiting_count() == 1


def test_zero_batch_size_schedules_nothing():
    s = _sched(max_preferred_batch_size=0)
    s.enqueue_tokenized("a", 0, [1], 10)
    assert s.schedule_step() == []
    assert s.waiting_count() == 1
    assert s.avg_batch_size() == 0.0


def test_request_finishes_when_no_output_requested():
    s = Scheduler()
    s.enqueue_tokenized("x", 0, [1, 2], 0)
    items = s.schedule_step()
    assert items[0].request.status == RequestStatus.FINISHED
    assert s.completed_count() == 1
    assert s.running_count() == 0


def test_untokenized_request_gets_one_token():
    s = Scheduler()
    s.enqueue(InferRequest(request_id="r"))
    items = s.schedule_step()
    assert [(i.request.request_id, i.num_tokens) for i in items] == [("r", 1)]


def test_complete_request():
    s = _sched(max_preferred_batch_size=16)
    s.enqueue_tokenized("complete-me", 0, [1, 2, 3], 10)
    s.schedule_step()
    assert s.complete_request("complete-me") is True
    assert s.completed_count() >= 1
    assert s.running_count() == 0


def test_complete_unknown_request():
    s = Scheduler()
    assert s.complete_request("missing") is False
    assert s.completed_count() == 0


def test_stats_initially_zero():
    s = _sched(max_preferred_batch_size=32)
    assert s.completed_count() == 0
    assert s.queued_count() == 0
    assert s.running_count() == 0
    assert s.waiting_count() == 0
    assert s.preempted_count() == 0
    assert s.avg_batch_size() == 0.0


def test_policy_config():
    s = _sched(policy=SchedulerPolicy.DYNAMIC)
    assert s.policy == SchedulerPolicy.DYNAMIC
    s.policy = SchedulerPolicy.SEQUENCE
    assert s.policy == SchedulerPolicy.SEQUENCE
    s.policy = SchedulerPolicy.ENSEMBLE
    assert s.policy == SchedulerPolicy.ENSEMBLE


def test_token_budget_config():
    s = _sched()
    s.token_budget = 4096
    assert s.token_budget == 4096
    s.token_budget = 512
    assert s.token_budget == 512


def test_poll_empty():
    s = _sched()
    assert s.poll() == []


def test_poll_executes_infer_requests():
    s = Scheduler()
    req = InferRequest(request_id="exec-me")
    s.enqueue(req)
    s.enqueue_tokenized("tokenized", 0, [1], 10)
    seen = []
    items = s.poll(seen.append)
    assert seen == [req]
    assert len(items) == 2


def test_basic_lifecycle():
    s = Scheduler()
    assert s.avg_batch_size() == 0.0
    s.enqueue_tokenized("test-001", 0, [101, 202, 303, 404], 10)
    assert s.waiting_count() == 1
    s.poll()
    assert s.running_count() == 1
    assert s.waiting_count() == 0
    s.complete_request("test-001")
    assert s.completed_count() == 1
    assert s.running_count() == 0


def test_queue_fill_and_duplicate():
    s = Scheduler()
    for i in range(64):
        s.enqueue_tokenized(f"fill-{i}", 0, [1], 10)
    assert s.waiting_count() == 64
    with pytest.raises(SchedulerError):
        s.enqueue_tokenized("fill-0", 0, [1], 10)
    assert s.waiting_count() == 64


def test_request_table_capacity():
    s = _sched(policy=SchedulerPolicy.SEQUENCE)
    for i in range(MAX_REQUESTS):
        s.enqueue_tokenized(f"r{i}", 0, [1], 1)
    with pytest.raises(SchedulerError):
        s.enqueue_tokenized("overflow", 0, [1], 1)
    assert s.waiting_count() == MAX_REQUESTS