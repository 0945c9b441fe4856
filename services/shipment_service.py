"""
Bulk shipment purchase orchestrator.

Buys postage for every eligible order of a settled batch (or an explicit
order list) as a detached background job. Request handlers only ever
submit, poll and cancel; they never wait on carrier calls.

THREAD MODEL:
    Request threads
    ├── submit()          - validate synchronously, queue the job, return its handle
    ├── status()          - snapshot from ShipmentJobStore
    ├── cancel()          - set the cancel flag (pending jobs cancel immediately)
    └── refund_shipment() - void a purchased label (synchronous carrier call)

    ShipmentWorkerPool threads ("Shipments-1", "Shipments-2", ...)
    └── run one job at a time, order by order:
        hold check -> existing shipment? -> parcel -> quotes from each
        carrier backend -> rate choice -> purchase -> Shipment record

    The order lock covers only the reads and the Shipment record. While a
    carrier call is in flight the order is claimed instead, so hold and
    queue changes on it never wait on the network.

Failure isolation:
    A carrier failure (or any error) for one order is recorded on that
    order's outcome and the job moves on. Only an error outside the
    per-order step fails the job as a whole.

Cancellation:
    Best effort. The purchase in flight when cancel is observed completes;
    every order not yet started gets a ``cancelled`` outcome. A job whose
    every order was resolved before the cancel was seen still completes.

Usage:
    service = ShipmentPurchaseService(store, holds, batches, builder, carriers)
    service.start()
    job_id = service.submit(BulkPurchaseRequest(batch_id=3), ctx)
    service.status(job_id)
    service.cancel(job_id, ctx)
    service.shutdown()
"""

from __future__ import annotations

import copy
import queue
import threading
import uuid
from collections import OrderedDict
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Dict, Any, Iterator, List, Mapping, Optional, Set

from core.carrier_client import CarrierClient
from core.context import OperatorContext
from core.exceptions import (
    BatchNotReady,
    CarrierFailure,
    FulfillmentError,
    InvalidTransition,
    JobNotFound,
    ShipmentNotFound,
    ValidationError,
)
from core.store import FulfillmentStore
from models.line_item import LineItem
from models.order import Order
from models.requests import BulkPurchaseRequest
from models.shipment import ParcelSpec, Rate, Shipment
from models.shipment_job import ShipmentPurchaseJob, OrderOutcome, JobStatus, OutcomeStatus
from modules.parcel_builder import ParcelBuilder
from modules.rate_selector import select_rate
from services.batch_manager import BatchManager
from services.hold_registry import HoldRegistry
from logging_config import get_logger, get_job_logger, set_thread_name


logger = get_logger(__name__)


RateSelector = Callable[..., Optional[Rate]]


class ShipmentJobStore:
    """
    Thread-safe storage for purchase jobs.

    Worker threads mutate jobs inside ``locked(job_id)``; request threads
    read ``snapshot(job_id)`` dictionaries. Finished jobs beyond
    ``retention`` are pruned oldest first.
    """

    def __init__(self, retention: int = 200):
        self._jobs: "OrderedDict[str, ShipmentPurchaseJob]" = OrderedDict()
        self._finished: Dict[str, threading.Event] = {}
        self._lock = threading.RLock()
        self._retention = retention

    def add(self, job: ShipmentPurchaseJob) -> None:
        with self._lock:
            self._jobs[job.id] = job
            self._finished[job.id] = threading.Event()
            self._prune()

    @contextmanager
    def locked(self, job_id: str) -> Iterator[ShipmentPurchaseJob]:
        """Yield the live job while holding the store lock."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFound(job_id)
            yield job

    def snapshot(self, job_id: str) -> Dict[str, Any]:
        with self.locked(job_id) as job:
            return job.to_dict()

    def mark_finished(self, job_id: str) -> None:
        with self._lock:
            event = self._finished.get(job_id)
        if event is not None:
            event.set()

    def wait(self, job_id: str, timeout: Optional[float] = None) -> bool:
        with self._lock:
            event = self._finished.get(job_id)
        if event is None:
            raise JobNotFound(job_id)
        return event.wait(timeout)

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def _prune(self) -> None:
        finished = [job_id for job_id, job in self._jobs.items() if job.is_terminal]
        excess = len(self._jobs) - self._retention
        for job_id in finished[:max(0, excess)]:
            del self._jobs[job_id]
            self._finished.pop(job_id, None)
            logger.debug(f"Pruned finished job {job_id[:8]}")


class ShipmentWorkerPool:
    """
    Fixed pool of daemon threads consuming job ids from a queue.

    Safe to start/stop multiple times.
    """

    def __init__(self, handler: Callable[[str], None], workers: int = 2):
        self._handler = handler
        self._workers = max(1, workers)
        self._queue: "queue.Queue[str]" = queue.Queue()
        self._stop_event = threading.Event()
        self._threads: List[threading.Thread] = []

    @property
    def is_running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def start(self) -> None:
        if self.is_running:
            logger.warning("Shipment worker pool already running")
            return

        self._stop_event.clear()
        self._threads = [
            threading.Thread(
                target=self._worker_loop,
                args=(f"Shipments-{n}",),
                name=f"Shipments-{n}",
                daemon=True,
            )
            for n in range(1, self._workers + 1)
        ]
        for thread in self._threads:
            thread.start()
        logger.info(f"Started {self._workers} shipment worker thread(s)")

    def submit(self, job_id: str) -> None:
        self._queue.put(job_id)

    def stop(self, timeout_per_thread: float = 5.0) -> None:
        if not self._threads:
            return

        logger.info("Stopping shipment worker threads...")
        self._stop_event.set()
        for thread in self._threads:
            if thread.is_alive():
                thread.join(timeout=timeout_per_thread)
                if thread.is_alive():
                    logger.warning(f"Worker {thread.name} did not stop cleanly")
        self._threads = []
        logger.info("Shipment worker threads stopped")

    def _worker_loop(self, name: str) -> None:
        set_thread_name(name)
        while not self._stop_event.is_set():
            try:
                job_id = self._queue.get(timeout=0.2)
            except queue.Empty:
                continue
            try:
                self._handler(job_id)
            finally:
                self._queue.task_done()


class ShipmentPurchaseService:
    """Submits, runs, reports and cancels bulk shipment purchase jobs."""

    def __init__(
        self,
        store: FulfillmentStore,
        holds: HoldRegistry,
        batches: BatchManager,
        parcel_builder: ParcelBuilder,
        carriers: Mapping[str, CarrierClient],
        rate_selector: RateSelector = select_rate,
        workers: int = 2,
        retention: int = 200,
    ):
        """
        Initialize the orchestrator.

        Args:
            store: Fulfillment store
            holds: Hold registry (orders on hold are never shipped)
            batches: Batch manager (stamps shipments_purchased_at)
            parcel_builder: Builds parcels for quoting
            carriers: Carrier backends by name
            rate_selector: Picks a rate when the request names none
            workers: Number of worker threads
            retention: Finished jobs kept for status polling

        Raises:
            ValueError: If no carrier backend is configured
        """
        if not carriers:
            raise ValueError("At least one carrier backend is required")

        self._store = store
        self._holds = holds
        self._batches = batches
        self._parcel_builder = parcel_builder
        self._carriers = dict(carriers)
        self._rate_selector = rate_selector

        self.jobs = ShipmentJobStore(retention=retention)
        self._pool = ShipmentWorkerPool(self._run_job, workers=workers)

        # Orders with a carrier purchase or refund in flight
        self._in_flight: Set[str] = set()
        self._in_flight_lock = threading.Lock()

        logger.info(f"ShipmentPurchaseService initialized with carriers: {', '.join(self._carriers)}")

    @property
    def carrier_names(self) -> List[str]:
        return list(self._carriers)

    @property
    def is_running(self) -> bool:
        return self._pool.is_running

    def start(self) -> None:
        self._pool.start()

    def shutdown(self) -> None:
        self._pool.stop()
        for carrier in self._carriers.values():
            carrier.close()

    # =========================================================================
    # REQUEST-SIDE OPERATIONS
    # =========================================================================

    def submit(self, request: BulkPurchaseRequest, ctx: OperatorContext) -> str:
        """
        Validate a bulk purchase request and queue it.

        Args:
            request: Batch id or explicit order list, plus optional carrier,
                rate id and target line items
            ctx: Operator

        Returns:
            Job handle for status() / cancel()

        Raises:
            ValidationError: Unknown carrier, or target items outside the orders
            BatchNotFound / OrderNotFound: Unknown scope
            BatchNotReady: The batch has not settled
        """
        if request.carrier is not None and request.carrier not in self._carriers:
            raise ValidationError(f"Unknown carrier '{request.carrier}'", field="carrier")

        if request.batch_id is not None:
            batch = self._store.get_batch(request.batch_id)
            if not batch.is_settled:
                raise BatchNotReady(batch.id, ["Batch must be settled before purchasing shipments"])
            order_ids = list(batch.order_ids)
        else:
            order_ids = list(request.order_ids or [])
            if not order_ids:
                raise ValidationError("No orders to ship", field="orderIds")

        orders = [self._store.get_order(order_id) for order_id in order_ids]

        targets = request.target_line_item_ids
        if targets is not None:
            known = {item_id for order in orders for item_id in order.line_item_ids}
            unknown = [item_id for item_id in targets if item_id not in known]
            if unknown:
                raise ValidationError(
                    f"Target line items not in the selected orders: {', '.join(unknown)}",
                    field="targetLineItemIds",
                )

        outcomes = []
        skipped = {}
        for order in orders:
            reason = self._ineligible_reason(order, targets)
            if reason:
                skipped[order.id] = reason
            else:
                outcomes.append(OrderOutcome(order_id=order.id))

        job = ShipmentPurchaseJob(
            id=str(uuid.uuid4()),
            batch_id=request.batch_id,
            outcomes=outcomes,
            skipped=skipped,
            carrier=request.carrier,
            rate_id=request.rate_id,
            target_line_item_ids=list(targets) if targets is not None else None,
            submitted_by=ctx.actor_id,
        )
        self.jobs.add(job)
        self._pool.submit(job.id)

        logger.info(
            f"Bulk purchase job {job.id[:8]} submitted by {ctx.display}: "
            f"{len(outcomes)} order(s), {len(skipped)} skipped"
        )
        return job.id

    def status(self, job_id: str) -> Dict[str, Any]:
        """
        Snapshot of a job.

        Raises:
            JobNotFound: Unknown handle
        """
        return self.jobs.snapshot(job_id)

    def cancel(self, job_id: str, ctx: OperatorContext) -> Dict[str, Any]:
        """
        Request cancellation. Idempotent; finished jobs are returned unchanged.

        Raises:
            JobNotFound: Unknown handle
        """
        finished_now = False
        with self.jobs.locked(job_id) as job:
            if job.is_terminal:
                return job.to_dict()

            job.cancel_requested = True
            if job.status == JobStatus.PENDING:
                _cancel_remaining(job)
                job.status = JobStatus.CANCELLED
                job.finished_at = datetime.now(timezone.utc)
                finished_now = True
            snapshot = job.to_dict()

        if finished_now:
            self.jobs.mark_finished(job_id)
        logger.info(f"Cancellation of job {job_id[:8]} requested by {ctx.display}")
        return snapshot

    def wait(self, job_id: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Block until the job finishes (or timeout) and return its snapshot. Not for request handlers."""
        self.jobs.wait(job_id, timeout)
        return self.status(job_id)

    def _ineligible_reason(self, order: Order, targets: Optional[List[str]]) -> Optional[str]:
        if order.cancelled:
            return "order cancelled"
        if self._holds.has_unresolved_hold(order.id):
            return "unresolved hold"
        if not self._items_to_ship(order, targets) and not self._active_shipments(order):
            return "no shippable line items"
        return None

    def _items_to_ship(self, order: Order, targets: Optional[List[str]]) -> List[LineItem]:
        items = self._store.items_for_order(order.id)
        if targets is not None:
            wanted = set(targets)
            return [i for i in items if i.id in wanted and i.requires_shipping]
        return [i for i in items if i.is_shippable]

    def _active_shipments(self, order: Order) -> List[Shipment]:
        return [s for s in self._store.shipments_for_order(order.id) if s.is_active]

    # =========================================================================
    # WORKER-SIDE EXECUTION
    # =========================================================================

    def _run_job(self, job_id: str) -> None:
        """Run one job to completion (worker thread)."""
        job_logger = get_job_logger(job_id)

        try:
            with self.jobs.locked(job_id) as job:
                if job.is_terminal:
                    job_logger.info("Job already finished before start (cancelled while pending)")
                    return
                job.status = JobStatus.RUNNING
                job.started_at = datetime.now(timezone.utc)
                order_ids = [o.order_id for o in job.outcomes]
                carrier = job.carrier
                rate_id = job.rate_id
                targets = job.target_line_item_ids
                batch_id = job.batch_id
        except JobNotFound:
            logger.warning(f"Job {job_id[:8]} vanished before it could run")
            return

        job_logger.info(f"Job started: {len(order_ids)} order(s)")

        try:
            for order_id in order_ids:
                with self.jobs.locked(job_id) as job:
                    if job.cancel_requested:
                        break
                    job.outcome_for(order_id).status = OutcomeStatus.RUNNING

                result = self._purchase_for_order(job_id, order_id, carrier, rate_id, targets, job_logger)

                with self.jobs.locked(job_id) as job:
                    outcome = job.outcome_for(order_id)
                    outcome.status = result.status
                    outcome.carrier = result.carrier
                    outcome.tracking_number = result.tracking_number
                    outcome.shipment_id = result.shipment_id
                    outcome.error = result.error
                    outcome.reused = result.reused

            with self.jobs.locked(job_id) as job:
                # A cancel that lands after the last purchase was issued stops nothing
                if _cancel_remaining(job):
                    job.status = JobStatus.CANCELLED
                else:
                    job.status = JobStatus.COMPLETED
                job.finished_at = datetime.now(timezone.utc)
                final_status = job.status
                succeeded, failed = job.succeeded, job.failed

            if final_status == JobStatus.COMPLETED and batch_id is not None:
                self._batches.mark_shipments_purchased(batch_id)

            job_logger.info(f"Job {final_status.value}: {succeeded} succeeded, {failed} failed")

        except Exception as e:
            job_logger.error(f"Job failed: {e}", exc_info=True)
            with self.jobs.locked(job_id) as job:
                for outcome in job.outcomes:
                    if not outcome.is_finished:
                        outcome.status = OutcomeStatus.FAILED
                        outcome.error = "job failed"
                job.status = JobStatus.FAILED
                job.error = str(e)
                job.finished_at = datetime.now(timezone.utc)

        finally:
            self.jobs.mark_finished(job_id)

    def _purchase_for_order(
        self,
        job_id: str,
        order_id: str,
        carrier_name: Optional[str],
        rate_id: Optional[str],
        targets: Optional[List[str]],
        job_logger,
    ) -> OrderOutcome:
        """
        Buy (or reuse) the shipment for one order.

        The order lock is held only while reading the order and recording
        the shipment; carrier calls run outside it, with the order claimed
        so no other job or refund works on it meanwhile.

        Never raises: every failure becomes a FAILED outcome.
        """
        try:
            with self._store.order_lock(order_id):
                order = self._store.get_order(order_id)

                if self._holds.has_unresolved_hold(order.id):
                    return _failed(order_id, "Order has an unresolved hold")

                existing = self._active_shipments(order)
                if existing:
                    shipment = existing[0]
                    job_logger.info(f"Order {order_id} already has shipment {shipment.id}; reusing")
                    return OrderOutcome(
                        order_id=order_id,
                        status=OutcomeStatus.SUCCEEDED,
                        carrier=shipment.carrier,
                        tracking_number=shipment.tracking_number,
                        shipment_id=shipment.id,
                        reused=True,
                    )

                snapshot = copy.deepcopy(order)
                items = self._items_to_ship(order, targets)
                parcel = self._parcel_builder.build(order, items)
                order_total = sum(i.unit_value * i.quantity for i in items)
                self._claim(order_id)

            try:
                rate = self._choose_rate(snapshot, parcel, order_total, carrier_name, rate_id, job_logger)

                with self._store.order_lock(order_id):
                    put_on_hold = self._holds.has_unresolved_hold(order_id)
                if put_on_hold:
                    return _failed(order_id, "Order was put on hold before purchase")

                receipt = self._carriers[rate.carrier].purchase(rate, parcel, snapshot)

                with self._store.order_lock(order_id):
                    order = self._store.get_order(order_id)
                    shipment = Shipment(
                        id=f"shp-{uuid.uuid4().hex[:12]}",
                        order_id=order.id,
                        carrier=rate.carrier,
                        service=rate.service,
                        rate_id=rate.rate_id,
                        cost=rate.cost,
                        tracking_number=receipt.tracking_number,
                        label_url=receipt.label_url,
                        carrier_shipment_id=receipt.carrier_shipment_id,
                        line_item_ids=parcel.line_item_ids,
                        parcel=parcel,
                        job_id=job_id,
                    )
                    self._store.add_shipment(shipment)
                    order.shipment_ids.append(shipment.id)
                    if self._holds.has_unresolved_hold(order_id):
                        job_logger.warning(
                            f"Order {order_id} was put on hold while its label was being bought; "
                            f"shipment {shipment.id} recorded anyway"
                        )
            finally:
                self._release(order_id)

            job_logger.info(
                f"Order {order_id}: purchased {rate.carrier} {rate.service} "
                f"({rate.cost:.2f}) tracking {receipt.tracking_number}"
            )
            return OrderOutcome(
                order_id=order_id,
                status=OutcomeStatus.SUCCEEDED,
                carrier=rate.carrier,
                tracking_number=receipt.tracking_number,
                shipment_id=shipment.id,
            )

        except CarrierFailure as e:
            job_logger.warning(f"Order {order_id}: carrier failure: {e}")
            outcome = _failed(order_id, e.message)
            outcome.carrier = e.carrier
            return outcome
        except FulfillmentError as e:
            job_logger.warning(f"Order {order_id}: {e.message}")
            return _failed(order_id, e.message)
        except Exception as e:
            job_logger.error(f"Order {order_id}: unexpected error: {e}", exc_info=True)
            return _failed(order_id, str(e))

    def _choose_rate(
        self,
        order: Order,
        parcel: ParcelSpec,
        order_total: float,
        carrier_name: Optional[str],
        rate_id: Optional[str],
        job_logger,
    ) -> Rate:
        """Quote every eligible backend and pick the rate to buy."""
        backends = [self._carriers[carrier_name]] if carrier_name else list(self._carriers.values())
        rates: List[Rate] = []
        errors: List[str] = []
        for backend in backends:
            try:
                rates.extend(backend.get_rates(parcel, order))
            except CarrierFailure as e:
                job_logger.warning(f"Order {order.id}: no quotes from {backend.name}: {e.message}")
                errors.append(e.message)

        if rate_id:
            rate = next((r for r in rates if r.rate_id == rate_id), None)
            if rate is None:
                raise CarrierFailure(carrier_name or "carriers", f"Rate {rate_id} is not offered", order.id)
            return rate

        rate = self._rate_selector(rates, order.shipping_priority, order_total, order.id)
        if rate is None:
            raise CarrierFailure(carrier_name or "carriers", "; ".join(errors) or "No rates available", order.id)
        return rate

    # =========================================================================
    # REFUNDS
    # =========================================================================

    def refund_shipment(self, order_id: str, shipment_id: str, ctx: OperatorContext) -> Shipment:
        """
        Void a purchased label so the order can be shipped again.

        The carrier call runs outside the order lock; the order stays
        claimed until the refund is recorded.

        Args:
            order_id: Order the shipment belongs to
            shipment_id: Shipment to refund
            ctx: Operator

        Returns:
            The refunded shipment

        Raises:
            OrderNotFound / ShipmentNotFound: Unknown order, or a shipment
                that is not on that order
            InvalidTransition: Label never bought, already refunded, or a
                purchase or refund for the order is in progress
            ValidationError: The shipment's carrier backend is not configured
            CarrierFailure: The backend refused the refund
        """
        with self._store.order_lock(order_id):
            order = self._store.get_order(order_id)
            shipment = self._store.get_shipment(shipment_id)
            if shipment.order_id != order.id:
                raise ShipmentNotFound(shipment_id)
            if shipment.refunded:
                raise InvalidTransition(
                    f"Shipment {shipment.id} is already refunded",
                    current_state="refunded",
                    shipment_id=shipment.id,
                )
            if not shipment.tracking_number:
                raise InvalidTransition(
                    f"Shipment {shipment.id} has no purchased label",
                    current_state="unpurchased",
                    shipment_id=shipment.id,
                )
            carrier = self._carriers.get(shipment.carrier)
            if carrier is None:
                raise ValidationError(f"Carrier '{shipment.carrier}' is not configured", field="carrier")
            self._claim(order_id)

        try:
            carrier.refund(shipment)
            with self._store.order_lock(order_id):
                shipment.refunded = True
                shipment.refunded_at = datetime.now(timezone.utc)
                shipment.refunded_by = ctx.actor_id
        finally:
            self._release(order_id)

        logger.info(f"Shipment {shipment.id} ({shipment.tracking_number}) of order {order_id} refunded by {ctx.display}")
        return shipment

    # =========================================================================
    # IN-FLIGHT CLAIMS
    # =========================================================================

    def _claim(self, order_id: str) -> None:
        """Mark an order as having a carrier call in flight (caller holds the order lock)."""
        with self._in_flight_lock:
            if order_id in self._in_flight:
                raise InvalidTransition(
                    f"A label purchase or refund for order {order_id} is already in progress",
                    current_state="in_flight",
                    order_id=order_id,
                )
            self._in_flight.add(order_id)

    def _release(self, order_id: str) -> None:
        with self._in_flight_lock:
            self._in_flight.discard(order_id)


def _failed(order_id: str, error: str) -> OrderOutcome:
    return OrderOutcome(order_id=order_id, status=OutcomeStatus.FAILED, error=error)


def _cancel_remaining(job: ShipmentPurchaseJob) -> int:
    """Cancel every unresolved outcome; returns how many were cancelled."""
    cancelled = 0
    for outcome in job.outcomes:
        if outcome.status in (OutcomeStatus.PENDING, OutcomeStatus.RUNNING):
            outcome.status = OutcomeStatus.CANCELLED
            cancelled += 1
    return cancelled
