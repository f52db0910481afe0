from dataclasses import dataclass, field
from typing import Optional, Tuple


@dataclass(frozen=True)
class Respondent:
    """Respondent descriptor as stored with the study."""

    id: str
    name: str = ""
    device: Optional[str] = None
    segments: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def label(self) -> str:
        return self.name or self.id
