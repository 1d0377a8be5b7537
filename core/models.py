# core/models.py
"""
Value objects passed between the rate source, evaluator, notifier and cycle
"""

from datetime import datetime, timezone
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class Classification(Enum):
    """Classification of a rate sample against the favorable threshold"""
    FAVORABLE = "favorable"
    UNFAVORABLE = "unfavorable"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class RateSample:
    """One fetched exchange rate, never persisted"""
    value: float
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    quote_rate: Optional[float] = None
    source: str = "unknown"


@dataclass(frozen=True)
class AlertMessage:
    """Human-readable verdict derived from a rate sample"""
    text: str
    classification: Classification
    color: str
    rate: Optional[float] = None

    def to_dict(self):
        return {
            'text': self.text,
            'classification': self.classification.value,
            'color': self.color,
            'rate': self.rate,
        }


@dataclass
class CycleReport:
    """Outcome of one scheduled check-and-notify pass"""
    started_at: datetime
    finished_at: Optional[datetime] = None
    sample: Optional[RateSample] = None
    message: Optional[AlertMessage] = None
    recipients: int = 0
    sent: int = 0
    failed: List[str] = field(default_factory=list)
    skipped: bool = False
    aborted: bool = False
    reason: Optional[str] = None

    @property
    def attempted(self) -> int:
        return self.sent + len(self.failed)

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()
