"""
Result records returned by backup and sync operations.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional


class Resolution(Enum):
    """Which side became authoritative in a sync."""

    KEPT_LOCAL = "local"
    KEPT_REMOTE = "remote"


@dataclass(frozen=True)
class SyncOutcome:
    """
    Result of an upload, restore or sync.

    Messages are meant for end users; failure causes are only logged.

    Attributes:
        succeeded: Whether the operation completed
        message: Human-readable summary
        resolution: Side kept by a sync (None when nothing was compared)
        file_id: Identifier of an uploaded backup
        count: Number of contacts uploaded or restored
    """

    succeeded: bool
    message: str
    resolution: Optional[Resolution] = None
    file_id: Optional[str] = None
    count: Optional[int] = None

    @classmethod
    def failure(cls, message: str) -> SyncOutcome:
        return cls(succeeded=False, message=message)

    def with_resolution(self, resolution: Resolution) -> SyncOutcome:
        """Copy of this outcome tagged with the side that was kept."""
        return replace(self, resolution=resolution)
