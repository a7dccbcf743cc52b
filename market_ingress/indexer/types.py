"""
Core types for order ingestion.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Set


class IngressStatus(Enum):
    """Status of an ingress partition."""
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass
class UpsertResult:
    """Which indices of a batch were newly inserted or failed to persist."""
    inserted: Set[int] = field(default_factory=set)
    failed: Set[int] = field(default_factory=set)


@dataclass
class DispatchResult:
    enqueued: int = 0
    published: int = 0


@dataclass
class IngressStats:
    """Statistics for one ingress partition."""
    executions_succeeded: int = 0
    executions_failed: int = 0
    records_ingested: int = 0
    records_failed: int = 0
    tokens_inserted: int = 0
    enrichments_enqueued: int = 0
    orders_published: int = 0
    last_cursor: Optional[str] = None
    last_duration: Optional[float] = None
    total_duration: float = 0.0
    last_error: Optional[str] = None
    last_run_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "executions_succeeded": self.executions_succeeded,
            "executions_failed": self.executions_failed,
            "records_ingested": self.records_ingested,
            "records_failed": self.records_failed,
            "tokens_inserted": self.tokens_inserted,
            "enrichments_enqueued": self.enrichments_enqueued,
            "orders_published": self.orders_published,
            "last_cursor": self.last_cursor,
            "last_duration": self.last_duration,
            "total_duration": round(self.total_duration, 3),
            "last_error": self.last_error,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
        }
