"""
Self-service booking from the public page.

One call to PublicBookingPortal.submit() is one attempt:

    idle -> validating -> submitting -> success
                                     -> retrying_degraded -> success | failed
                                     -> failed

Capacity is checked against the bookings visible when the attempt starts.
There is no lock around check-and-insert, so two attempts racing for the
last seat can both succeed.
"""

import logging
import random
import time
from dataclasses import dataclass, field
from datetime import date as date_type, datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from sqlalchemy.exc import SQLAlchemyError

from database import RowStore, SchemaMismatchError, UnknownColumnError
from errors import BackendException, SlotUnavailableException, ValidationException
from models import PUBLIC_REQUEST_CATEGORY, BookingStatus, TrainingType
from slots import Slot, SlotDefaults, SlotView, availability_for_date

logger = logging.getLogger(__name__)

PORTAL_USER = "Public Portal"

# Columns that may be dropped when the bookings table predates them
DEGRADABLE_FIELDS = frozenset({"phone_number"})


class SubmissionState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    SUBMITTING = "submitting"
    RETRYING_DEGRADED = "retrying_degraded"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class PublicBookingRequest:
    company_name: str
    phone_number: str
    date: str
    slot_id: str
    client_name: str = ""


@dataclass
class SubmissionAttempt:
    states: List[SubmissionState] = field(default_factory=lambda: [SubmissionState.IDLE])
    error: Optional[str] = None

    @property
    def state(self) -> SubmissionState:
        return self.states[-1]

    def move(self, state: SubmissionState) -> None:
        logger.debug("Submission %s -> %s", self.state.value, state.value)
        self.states.append(state)


@dataclass
class SubmissionResult:
    booking_id: str
    booking: Dict[str, Any]
    degraded: bool = False
    dropped_fields: List[str] = field(default_factory=list)


def generate_request_id(now_ms: Optional[int] = None, rng: Optional[random.Random] = None) -> str:
    """REQ-<last 8 digits of the epoch millis>-<3 random digits>"""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    rng = rng or random
    return f"REQ-{str(now_ms)[-8:]}-{rng.randint(100, 999)}"


def portal_notes(phone_number: str, client_name: str = "") -> str:
    notes = f"Customer requested via public portal. Phone: {phone_number}"
    if client_name:
        notes = f"{notes}. Contact: {client_name}"
    return notes


def build_public_booking(request: PublicBookingRequest, slot: Slot, booking_id: str) -> Dict[str, Any]:
    now = datetime.now(timezone.utc).isoformat()
    phone = request.phone_number.strip()
    contact = request.client_name.strip()
    return {
        "id": booking_id,
        "client_name": request.company_name.strip(),
        "assigned_person": "TBD",
        "kam_name": "TBD",
        "title": "Public Booking Request",
        "category": PUBLIC_REQUEST_CATEGORY,
        "type": TrainingType.ONLINE.value,
        "package": "",
        "manpower_submission_date": None,
        "date": request.date,
        "start_time": slot.time,
        "duration": 1.0,
        "location": "",
        # Phone is kept in the notes too, in case the column has to be dropped
        "notes": portal_notes(phone, contact),
        "phone_number": phone,
        "status": BookingStatus.PENDING.value,
        "created_at": now,
        "history": [
            {"timestamp": now, "user": PORTAL_USER, "action": "Requested via public portal"}
        ],
    }


class PublicBookingPortal:
    def __init__(
        self,
        store: RowStore,
        defaults: SlotDefaults,
        on_success: Optional[Callable[[], Awaitable[Any]]] = None,
        today: Callable[[], date_type] = date_type.today,
    ):
        self.store = store
        self.defaults = defaults
        self.on_success = on_success
        self.today = today
        self._in_flight: Set[Tuple[str, str, str, str]] = set()

    def reload_defaults(self, defaults: SlotDefaults) -> None:
        logger.info("Portal slot defaults now capacity=%d times=%s", defaults.capacity, defaults.times)
        self.defaults = defaults

    async def _day(self, date: str) -> Tuple[List[Slot], List[Dict[str, Any]]]:
        try:
            rows = await self.store.select("training_slots", date=date)
            bookings = await self.store.select("bookings", date=date)
        except (SQLAlchemyError, SchemaMismatchError) as exc:
            raise BackendException(f"Could not load availability: {exc}") from exc
        return [Slot.from_row(r) for r in rows], bookings

    async def slots(self, date: str) -> List[SlotView]:
        configured, bookings = await self._day(date)
        return availability_for_date(date, configured, bookings, self.defaults)

    @staticmethod
    def validate(request: PublicBookingRequest, today: Optional[date_type] = None) -> None:
        missing = [
            name
            for name, value in (
                ("slot_id", request.slot_id),
                ("company_name", request.company_name),
                ("phone_number", request.phone_number),
            )
            if not (value or "").strip()
        ]
        if missing:
            raise ValidationException(
                "Please fill in all required fields", code="MISSING_FIELDS", details={"fields": missing}
            )
        try:
            day = date_type.fromisoformat(request.date)
        except (TypeError, ValueError):
            raise ValidationException("Date must be YYYY-MM-DD", code="INVALID_DATE") from None
        if today is not None and day < today:
            raise ValidationException("Bookings cannot be made for past dates", code="PAST_DATE")

    async def _insert(self, record: Dict[str, Any], attempt: SubmissionAttempt) -> Tuple[Dict[str, Any], List[str]]:
        try:
            return (await self.store.insert("bookings", [record]))[0], []
        except UnknownColumnError as exc:
            dropped = [c for c in exc.columns if c in DEGRADABLE_FIELDS]
            if len(dropped) != len(exc.columns):
                raise
            attempt.move(SubmissionState.RETRYING_DEGRADED)
            logger.warning("Bookings table rejected %s; retrying without it", ", ".join(dropped))
            stripped = {k: v for k, v in record.items() if k not in dropped}
            return (await self.store.insert("bookings", [stripped]))[0], dropped

    async def submit(
        self, request: PublicBookingRequest, attempt: Optional[SubmissionAttempt] = None
    ) -> SubmissionResult:
        attempt = attempt or SubmissionAttempt()
        attempt.move(SubmissionState.VALIDATING)
        try:
            self.validate(request, self.today())
        except ValidationException as exc:
            attempt.error = exc.message
            attempt.move(SubmissionState.FAILED)
            raise

        key = (
            request.company_name.strip().lower(),
            request.phone_number.strip(),
            request.date,
            request.slot_id,
        )
        if key in self._in_flight:
            attempt.error = "This request is already being submitted"
            attempt.move(SubmissionState.FAILED)
            raise ValidationException(attempt.error, code="SUBMISSION_IN_FLIGHT")

        self._in_flight.add(key)
        try:
            attempt.move(SubmissionState.SUBMITTING)
            view = next((v for v in await self.slots(request.date) if v.slot.id == request.slot_id), None)
            if view is None:
                raise ValidationException("The selected slot is no longer offered", code="UNKNOWN_SLOT")
            if view.availability.is_deactivated:
                raise SlotUnavailableException("This slot is not open for booking", code="SLOT_DEACTIVATED")
            if view.availability.is_full:
                raise SlotUnavailableException("This slot is already full", code="SLOT_FULL")

            local_id = generate_request_id()
            record = build_public_booking(request, view.slot, local_id)
            try:
                saved, dropped = await self._insert(record, attempt)
            except (SQLAlchemyError, SchemaMismatchError) as exc:
                raise BackendException(f"Could not complete registration: {exc}") from exc
        except (ValidationException, SlotUnavailableException, BackendException) as exc:
            attempt.error = exc.message
            attempt.move(SubmissionState.FAILED)
            logger.warning("Public booking for %s on %s failed: %s", request.slot_id, request.date, exc.message)
            raise
        finally:
            self._in_flight.discard(key)

        attempt.move(SubmissionState.SUCCESS)
        booking_id = str(saved.get("id") or local_id)
        logger.info("Public booking %s created for %s %s", booking_id, request.date, view.slot.time)
        if self.on_success is not None:
            # The booking is already committed at this point
            try:
                await self.on_success()
            except Exception:
                logger.exception("Refresh after public booking %s failed", booking_id)
        return SubmissionResult(
            booking_id=booking_id,
            booking=saved,
            degraded=bool(dropped),
            dropped_fields=dropped,
        )
