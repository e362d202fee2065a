from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, FrozenSet, Mapping, Optional

from models.formats import FILE_LIST, IMAGE_FORMATS


@dataclass(frozen=True)
class ClipboardSnapshot:
    """Immutable view of the clipboard formats present at one change counter value."""
    formats: FrozenSet[str]
    payload: Mapping[str, bytes]
    sequence_id: int
    taken_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def empty(cls, sequence_id: int) -> "ClipboardSnapshot":
        return cls(formats=frozenset(), payload={}, sequence_id=sequence_id)

    @classmethod
    def of(cls, payload: Dict[str, bytes], sequence_id: int) -> "ClipboardSnapshot":
        return cls(formats=frozenset(payload), payload=dict(payload), sequence_id=sequence_id)

    @property
    def is_empty(self) -> bool:
        return not self.formats

    def image_format(self) -> Optional[str]:
        # IMAGE_FORMATS is ordered by preference
        for fmt in IMAGE_FORMATS:
            if fmt in self.formats and self.payload.get(fmt):
                return fmt
        return None

    def has_image(self) -> bool:
        return self.image_format() is not None

    def file_list(self) -> Optional[bytes]:
        return self.payload.get(FILE_LIST)

    def get(self, fmt: str) -> Optional[bytes]:
        return self.payload.get(fmt)

    def total_size(self) -> int:
        return sum(len(data) for data in self.payload.values())
