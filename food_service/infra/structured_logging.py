"""
Structured logging for driver dispatch.

One JSON line per decision on the ``dispatch.structured`` logger.
"""
from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

__all__ = ["DispatchEvent", "DispatchLogEntry", "log_dispatch_event"]

logger = logging.getLogger("dispatch.structured")


class DispatchEvent(str, Enum):
    PUSH_CLAIMED = "push_claimed"
    PUSH_SUPPRESSED = "push_suppressed"
    ORDER_UNAVAILABLE = "order_unavailable"
    CANDIDATES_FOUND = "candidates_found"
    NO_CANDIDATES = "no_candidates"
    OFFER_SENT = "offer_sent"
    OFFER_FAILED = "offer_failed"
    ABORTED_CLAIMED = "aborted_claimed"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    ERROR = "error"


@dataclass
class DispatchLogEntry:
    timestamp: str
    event: str
    order_id: Optional[int] = None
    driver_id: Optional[int] = None
    candidates_count: Optional[int] = None
    distance_km: Optional[float] = None
    radius_km: Optional[float] = None
    reason: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        data = {k: v for k, v in asdict(self).items() if v is not None and v != {}}
        return json.dumps(data, ensure_ascii=False, separators=(",", ":"))


def log_dispatch_event(
    event: DispatchEvent,
    *,
    order_id: Optional[int] = None,
    driver_id: Optional[int] = None,
    candidates_count: Optional[int] = None,
    distance_km: Optional[float] = None,
    radius_km: Optional[float] = None,
    reason: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
    level: int = logging.INFO,
    now: Optional[datetime] = None,
) -> DispatchLogEntry:
    moment = now or datetime.now(timezone.utc)
    entry = DispatchLogEntry(
        timestamp=moment.isoformat().replace("+00:00", "Z"),
        event=event.value,
        order_id=order_id,
        driver_id=driver_id,
        candidates_count=candidates_count,
        distance_km=distance_km,
        radius_km=radius_km,
        reason=reason,
        details=details or {},
    )
    logger.log(level, entry.to_json())
    return entry
