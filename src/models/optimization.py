import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

import ulid

from models.snapshot import ClipboardSnapshot


class PipelineState(str, enum.Enum):
    IDLE = "idle"
    EVALUATING = "evaluating"
    ENCODING = "encoding"
    COMMITTING = "committing"
    SKIPPED = "skipped"
    FAILED = "failed"


class Outcome(str, enum.Enum):
    """How one evaluation cycle ended."""
    IGNORED = "ignored"
    SKIPPED = "skipped"
    FAILED = "failed"
    COMMITTED = "committed"


@dataclass(frozen=True)
class RawImage:
    """Decoded pixel buffer. ``data`` is packed row-major in ``mode`` layout."""
    width: int
    height: int
    mode: str
    data: bytes

    @property
    def channels(self) -> int:
        return len(self.mode)


@dataclass(frozen=True)
class OptimizationCandidate:
    source_format: str
    raw_pixels: RawImage
    original_size: int
    source_path: Optional[Path] = None


@dataclass(frozen=True)
class OptimizedResult:
    encoded_bytes: bytes
    new_size: int
    committed: bool = False

    @classmethod
    def from_bytes(cls, encoded: bytes) -> "OptimizedResult":
        return cls(encoded_bytes=encoded, new_size=len(encoded))

    def mark_committed(self) -> "OptimizedResult":
        return OptimizedResult(self.encoded_bytes, self.new_size, committed=True)


@dataclass(frozen=True)
class SessionState:
    """The one retained record of the most recent committed optimization."""
    original_snapshot: ClipboardSnapshot
    original_size: int
    result: OptimizedResult
    expires_at: datetime
    session_id: str = field(default_factory=lambda: str(ulid.new()))
    created_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def open(
        cls,
        original: ClipboardSnapshot,
        original_size: int,
        result: OptimizedResult,
        revert_window: float,
        now: Optional[datetime] = None,
    ) -> "SessionState":
        created = now or datetime.now()
        return cls(
            original_snapshot=original,
            original_size=original_size,
            result=result,
            expires_at=created + timedelta(seconds=revert_window),
            created_at=created,
        )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.now()) >= self.expires_at

    def to_dict(self):
        return {
            "session_id": self.session_id,
            "original_size": self.original_size,
            "new_size": self.result.new_size,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }
