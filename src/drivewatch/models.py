from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class ChangeRecord:
    """One file observed as modified at/after the watermark."""
    name: str
    url: str
    last_updated: datetime  # tz-aware UTC


@dataclass
class TickResult:
    """Outcome of one check_folder_files_updates run."""
    run_id: str
    status: str  # notified|no_changes|backend_unavailable|persistence_failure|skipped_locked|error
    previous_watermark: datetime | None = None
    watermark: datetime | None = None
    changes: list[ChangeRecord] = field(default_factory=list)
    deliveries: dict[str, bool] = field(default_factory=dict)
    error: str | None = None
