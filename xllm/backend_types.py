"""Data types shared by the backend manager, models and the scheduler."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum


class DataType(IntEnum):
    """Element type of a tensor."""

    BOOL = 1
    UINT8 = 2
    UINT16 = 3
    UINT32 = 4
    UINT64 = 5
    INT8 = 6
    INT16 = 7
    INT32 = 8
    INT64 = 9
    FP16 = 10
    FP32 = 11
    FP64 = 12
    BYTES = 13


class MemoryType(IntEnum):
    """Where a tensor's memory lives."""

    CPU = 0
    GPU = 1
    CPU_PINNED = 2


class BackendState(IntEnum):
    """Lifecycle state of a backend or model."""

    UNINITIALIZED = 0
    INITIALIZING = 1
    READY = 2
    ERROR = 3
    UNLOADING = 4


class InstanceKind(IntEnum):
    """Device kind a model instance runs on."""

    GPU = 0
    CPU = 1


class VersionPolicy(IntEnum):
    """Which versions of a model are served."""

    LATEST = 0
    ALL = 1
    SPECIFIC = 2


class SchedulerPolicy(IntEnum):
    """Scheduling strategy."""

    DYNAMIC = 0
    SEQUENCE = 1
    ENSEMBLE = 2


def _enum_name(enum_cls: type[IntEnum], value: int) -> str:
    try:
        return enum_cls(value).name
    except ValueError:
        return "UNKNOWN"


def datatype_str(dtype: DataType | int) -> str:
    """Return the display name of a data type, e.g. ``"FP32"``."""
    return _enum_name(DataType, dtype)


def memory_type_str(mem: MemoryType | int) -> str:
    """Return the display name of a memory type, e.g. ``"GPU"``."""
    return _enum_name(MemoryType, mem)


def backend_state_str(state: BackendState | int) -> str:
    """Return the display name of a backend state, e.g. ``"READY"``."""
    return _enum_name(BackendState, state)


@dataclass
class Tensor:
    """Descriptor of a named tensor, optionally carrying its data."""

    name: str
    dtype: DataType = DataType.FP32
    shape: tuple[int, ...] = ()
    byte_size: int = 0
    memory_type: MemoryType = MemoryType.CPU
    memory_type_id: int = 0
    data: bytes | None = None

    def __post_init__(self) -> None:
        self.dtype = DataType(self.dtype)
        self.memory_type = MemoryType(self.memory_type)
        self.shape = tuple(int(d) for d in self.shape)

    @property
    def dims_count(self) -> int:
        return len(self.shape)


@dataclass
class InstanceGroup:
    """A group of identical model instances on one device kind."""

    count: int = 1
    kind: InstanceKind = InstanceKind.GPU
    gpus: tuple[int, ...] = ()

    def __post_init__(self) -> None:
        self.kind = InstanceKind(self.kind)
        self.gpus = tuple(self.gpus)

    @property
    def gpus_count(self) -> int:
        return len(self.gpus)


@dataclass
class ModelVersionConfig:
    """Version policy: ``num_versions`` applies to LATEST, ``versions`` to SPECIFIC."""

    policy: VersionPolicy = VersionPolicy.LATEST
    num_versions: int = 0
    versions: tuple[int, ...] = ()

    def __post_init__(self) -> None:
        self.policy = VersionPolicy(self.policy)
        self.versions = tuple(self.versions)

    @property
    def versions_count(self) -> int:
        return len(self.versions)


@dataclass
class DynamicBatchingConfig:
    """Dynamic batching settings of a model."""

    preferred_batch_size_ratio: float = 0.0
    max_queue_delay_ms: float = 0.0
    preserve_ordering: bool = False
    priority_levels: int = 0


@dataclass
class ModelConfig:
    """Full configuration of a served model."""

    name: str
    backend_name: str = ""
    model_path: str = ""
    max_batch_size: int = 0
    inputs: list[Tensor] = field(default_factory=list)
    outputs: list[Tensor] = field(default_factory=list)
    instance_groups: list[InstanceGroup] = field(default_factory=list)
    version_config: ModelVersionConfig = field(default_factory=ModelVersionConfig)
    dynamic_batching: DynamicBatchingConfig = field(default_factory=DynamicBatchingConfig)

    @property
    def input_count(self) -> int:
        return len(self.inputs)

    @property
    def output_count(self) -> int:
        return len(self.outputs)

    @property
    def instance_group_count(self) -> int:
        return len(self.instance_groups)


@dataclass
class InferRequest:
    """An inference request as submitted by a client."""

    request_id: str
    batch_size: int = 1
    inputs: list[Tensor] = field(default_factory=list)
    requested_output_names: list[str] = field(default_factory=list)
    enqueue_time_ns: int = 0
    priority: int = 0

    @property
    def input_count(self) -> int:
        return len(self.inputs)

    @property
    def requested_output_count(self) -> int:
        return len(self.requested_output_names)


@dataclass
class InferResponse:
    """Response to an inference request, holding zero or more outputs."""

    request_id: str
    error_code: int = 0
    error_message: str = ""
    outputs: list[Tensor] = field(default_factory=list)

    @property
    def output_count(self) -> int:
        return len(self.outputs)

    def set_output(
        self,
        name: str,
        dtype: DataType | int,
        shape,
        data: bytes | bytearray | memoryview | None,
        byte_size: int,
    ) -> Tensor:
        """Append an output tensor; the data, if any, is copied."""
        if not name:
            raise ValueError("output name must not be empty")
        if byte_size < 0:
            raise ValueError("byte_size must not be negative")
        tensor = Tensor(
            name=name,
            dtype=dtype,
            shape=tuple(shape),
            byte_size=byte_size,
            memory_type=MemoryType.CPU,
            data=None if data is None else bytes(data),
        )
        self.outputs.append(tensor)
        return tensor


@dataclass
class SchedulerConfig:
    """Scheduler settings; all fields default to zero like an empty config."""

    policy: SchedulerPolicy = SchedulerPolicy.DYNAMIC
    max_preferred_batch_size: int = 0
    max_queue_delay_ms: float = 0.0
    preserve_ordering: bool = False
    priority_levels: int = 0
    max_queue_size: int = 0

    def __post_init__(self) -> None:
        self.policy = SchedulerPolicy(self.policy)