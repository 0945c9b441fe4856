"""
Bulk shipment purchase job models.

A ShipmentPurchaseJob is written by a worker thread and read by request
threads through services.shipment_service.ShipmentJobStore, which hands out
snapshots (``to_dict``) rather than the live object.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, List, Optional


class JobStatus(Enum):
    """
    Status of a bulk purchase job.

    Lifecycle:
        PENDING -> RUNNING -> (COMPLETED | CANCELLED | FAILED)
        PENDING -> CANCELLED
    """

    PENDING = "pending"
    """Queued, no worker has picked it up yet."""

    RUNNING = "running"
    """A worker is purchasing shipments."""

    COMPLETED = "completed"
    """Every targeted order has an outcome."""

    CANCELLED = "cancelled"
    """Stopped on request; unprocessed orders were marked cancelled."""

    FAILED = "failed"
    """The job itself crashed (per-order failures do not fail the job)."""


TERMINAL_JOB_STATUSES = frozenset({
    JobStatus.COMPLETED,
    JobStatus.CANCELLED,
    JobStatus.FAILED,
})


class OutcomeStatus(Enum):
    """Per-order result within a job."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class OrderOutcome:
    """Result of purchasing a shipment for one order."""

    order_id: str
    status: OutcomeStatus = OutcomeStatus.PENDING
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    shipment_id: Optional[str] = None
    error: Optional[str] = None
    reused: bool = False
    """Order already had an active shipment; nothing was bought."""

    @property
    def is_finished(self) -> bool:
        return self.status in (
            OutcomeStatus.SUCCEEDED,
            OutcomeStatus.FAILED,
            OutcomeStatus.CANCELLED,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "status": self.status.value,
            "carrier": self.carrier,
            "tracking_number": self.tracking_number,
            "shipment_id": self.shipment_id,
            "error": self.error,
            "reused": self.reused,
        }


@dataclass
class ShipmentPurchaseJob:
    """
    Asynchronous, cancellable purchase of shipments for many orders.

    Thread Safety:
        - Mutated only by the worker thread running it, plus the
          ``cancel_requested`` flag set by request threads
        - All access goes through ShipmentJobStore, which holds its lock
    """

    id: str
    """Job handle (UUID) returned to the caller."""

    batch_id: Optional[int] = None

    status: JobStatus = JobStatus.PENDING

    outcomes: List[OrderOutcome] = field(default_factory=list)
    """One entry per eligible order, in submission order."""

    skipped: Dict[str, str] = field(default_factory=dict)
    """Ineligible order id -> reason; these get no outcome."""

    carrier: Optional[str] = None
    rate_id: Optional[str] = None
    target_line_item_ids: Optional[List[str]] = None

    submitted_by: str = ""
    submitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    cancel_requested: bool = False

    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.status == OutcomeStatus.SUCCEEDED)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == OutcomeStatus.FAILED)

    @property
    def progress(self) -> float:
        """Fraction of outcomes that are finished (1.0 for an empty job)."""
        if not self.outcomes:
            return 1.0
        done = sum(1 for o in self.outcomes if o.is_finished)
        return round(done / len(self.outcomes), 4)

    def outcome_for(self, order_id: str) -> Optional[OrderOutcome]:
        for outcome in self.outcomes:
            if outcome.order_id == order_id:
                return outcome
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Snapshot for the status endpoint."""

        def _iso(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if value else None

        return {
            "id": self.id,
            "batch_id": self.batch_id,
            "status": self.status.value,
            "outcomes": [o.to_dict() for o in self.outcomes],
            "skipped": dict(self.skipped),
            "carrier": self.carrier,
            "rate_id": self.rate_id,
            "target_line_item_ids": (
                list(self.target_line_item_ids) if self.target_line_item_ids is not None else None
            ),
            "submitted_by": self.submitted_by,
            "submitted_at": self.submitted_at.isoformat(),
            "started_at": _iso(self.started_at),
            "finished_at": _iso(self.finished_at),
            "cancel_requested": self.cancel_requested,
            "error": self.error,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "progress": self.progress,
        }
