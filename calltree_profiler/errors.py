"""Error types and recoverable diagnostics for call-tree reconstruction."""

from dataclasses import dataclass, field


SOFT_MISSING_RESOURCE = "SoftMissingResource"
UNMATCHED_END_EVENT = "UnmatchedEndEvent"
UNTERMINATED_INVOCATION = "UnterminatedInvocation"
UNKNOWN_FIELD_DEFAULT = "UnknownFieldDefault"


class ProfilerError(Exception):
    """Base class for fatal profiler errors."""


class MissingFileError(ProfilerError, FileNotFoundError):
    """A required input file does not exist."""

    def __init__(self, path: str, what: str = "Trace file"):
        self.path = str(path)
        self.what = what
        super().__init__(f"{what} not found: {self.path}")


class MalformedTraceError(ProfilerError, ValueError):
    """The trace document could not be parsed as structured data."""

    def __init__(self, path: str, reason: str):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Malformed trace {self.path}: {reason}")


class TraceReadError(ProfilerError, OSError):
    """The trace file exists but could not be read."""

    def __init__(self, path: str, reason: str):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Cannot read trace {self.path}: {reason}")


@dataclass
class Diagnostic:
    """A recoverable anomaly observed while loading or reconstructing."""

    kind: str
    message: str
    count: int = 1
    names: list[str] = field(default_factory=list)
    event_index: int | None = None

    def to_dict(self) -> dict:
        payload = {
            "kind": self.kind,
            "message": self.message,
            "count": self.count
        }
        if self.names:
            payload["names"] = list(self.names)
        if self.event_index is not None:
            payload["event_index"] = self.event_index
        return payload
