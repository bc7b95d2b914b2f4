from __future__ import annotations

from prometheus_client import Counter

TICKS = Counter(
    "drivewatch_ticks_total",
    "Total check ticks by outcome",
    ["status"]
)

CHANGES = Counter(
    "drivewatch_changes_total",
    "Total changed files reported"
)

DELIVERIES = Counter(
    "drivewatch_deliveries_total",
    "Channel deliveries by outcome",
    ["channel", "outcome"]
)
