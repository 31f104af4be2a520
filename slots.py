"""
Bookable training slots.

A date either has explicitly configured slots (rows in training_slots) or it
falls back to a generated default set. Default ("virtual") slots only exist in
memory; the first administrative change to any slot of such a date writes the
whole default set for that date to the table ("materializes" it) so the
remaining defaults are not lost.
"""

import logging
import uuid
from dataclasses import asdict, dataclass
from datetime import date as date_type
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from database import RowStore, SchemaMismatchError
from errors import BackendException, NotFoundException, ValidationException
from models import BookingStatus
from timeutil import format_12h, normalize_time

logger = logging.getLogger(__name__)

TABLE = "training_slots"
DEFAULT_SLOT_TIMES: Tuple[str, ...] = ("10:00 AM", "12:00 PM", "03:00 PM", "05:00 PM")
VIRTUAL_PREFIX = "virtual-"


@dataclass(frozen=True)
class SlotDefaults:
    capacity: int
    times: Tuple[str, ...] = DEFAULT_SLOT_TIMES


@dataclass
class Slot:
    id: str
    time: str
    date: str
    is_active: bool = True
    capacity: int = 0
    is_virtual: bool = False

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Slot":
        return cls(
            id=str(row["id"]),
            time=row["time"],
            date=row["date"],
            is_active=bool(row.get("is_active", True)),
            capacity=int(row.get("capacity") or 0),
        )

    def to_row(self) -> Dict[str, Any]:
        row = asdict(self)
        row.pop("is_virtual")
        return row


@dataclass(frozen=True)
class Availability:
    count: int  # seats remaining
    capacity: int
    is_full: bool
    is_deactivated: bool = False


def new_slot_id() -> str:
    return f"slot-{uuid.uuid4().hex[:9]}"


def virtual_slot_id(date: str, index: int) -> str:
    return f"{VIRTUAL_PREFIX}{date}-{index}"


def is_virtual_id(slot_id: str) -> bool:
    return slot_id.startswith(VIRTUAL_PREFIX)


def date_of_virtual_id(slot_id: str) -> str:
    # virtual-YYYY-MM-DD-<index>
    return slot_id[len(VIRTUAL_PREFIX):].rsplit("-", 1)[0]


def virtual_slots(date: str, defaults: SlotDefaults) -> List[Slot]:
    return [
        Slot(
            id=virtual_slot_id(date, idx),
            time=time,
            date=date,
            is_active=True,
            capacity=defaults.capacity,
            is_virtual=True,
        )
        for idx, time in enumerate(defaults.times)
    ]


def resolve_slots(
    date: str,
    configured: Iterable[Slot],
    default_capacity: int,
    times: Tuple[str, ...] = DEFAULT_SLOT_TIMES,
) -> List[Slot]:
    """Configured slots for the date in input order, or the default set when there are none."""
    day_slots = [s for s in configured if s.date == date]
    if day_slots:
        return day_slots
    return virtual_slots(date, SlotDefaults(capacity=default_capacity, times=times))


def count_bookings(slot: Slot, date: str, bookings: Iterable[Mapping[str, Any]]) -> int:
    slot_time = normalize_time(slot.time)
    return sum(
        1
        for b in bookings
        if b.get("date") == date
        and normalize_time(b.get("start_time") or "") == slot_time
        and b.get("status") != BookingStatus.CANCELLED.value
    )


def slot_availability(
    slot: Slot,
    date: str,
    bookings: Iterable[Mapping[str, Any]],
    default_capacity: int,
) -> Availability:
    capacity = slot.capacity or default_capacity
    if not slot.is_active:
        return Availability(count=0, capacity=capacity, is_full=True, is_deactivated=True)

    remaining = max(0, capacity - count_bookings(slot, date, bookings))
    return Availability(count=remaining, capacity=capacity, is_full=remaining <= 0)


class SlotService:
    """Slot administration over the training_slots table."""

    def __init__(self, store: RowStore):
        self.store = store

    async def configured(self, date: str) -> List[Slot]:
        try:
            rows = await self.store.select(TABLE, date=date)
        except SQLAlchemyError as exc:
            raise BackendException(f"Could not load slots: {exc}") from exc
        return [Slot.from_row(r) for r in rows]

    async def for_date(self, date: str, defaults: SlotDefaults) -> List[Slot]:
        return resolve_slots(date, await self.configured(date), defaults.capacity, defaults.times)

    async def _insert(self, slots: List[Slot]) -> None:
        try:
            await self.store.insert(TABLE, [s.to_row() for s in slots])
        except (SQLAlchemyError, SchemaMismatchError) as exc:
            raise BackendException(f"Could not save slots: {exc}") from exc

    async def materialize(
        self,
        date: str,
        defaults: SlotDefaults,
        changes: Optional[Dict[str, Dict[str, Any]]] = None,
    ) -> List[Slot]:
        """
        Persist every default slot of a date, applying per-slot changes keyed
        by virtual id. Returns the persisted slots in default order.
        """
        changes = changes or {}
        persisted = []
        for slot in virtual_slots(date, defaults):
            values = {
                "time": slot.time,
                "is_active": slot.is_active,
                "capacity": slot.capacity,
                **changes.get(slot.id, {}),
            }
            persisted.append(Slot(id=new_slot_id(), date=date, **values))
        await self._insert(persisted)
        logger.info("Materialized %d default slot(s) for %s", len(persisted), date)
        return persisted

    async def _get(self, slot_id: str) -> Slot:
        try:
            row = await self.store.get(TABLE, slot_id)
        except SQLAlchemyError as exc:
            raise BackendException(f"Could not load slot: {exc}") from exc
        if row is None:
            raise NotFoundException(f"Slot {slot_id} not found")
        return Slot.from_row(row)

    async def _patch(self, slot: Slot, patch: Dict[str, Any]) -> Slot:
        try:
            await self.store.update(TABLE, patch, slot.id)
        except (SQLAlchemyError, SchemaMismatchError) as exc:
            raise BackendException(f"Could not update slot: {exc}") from exc
        for key, value in patch.items():
            setattr(slot, key, value)
        return slot

    def _find_virtual(self, slot_id: str, defaults: SlotDefaults) -> Slot:
        date = date_of_virtual_id(slot_id)
        try:
            date_type.fromisoformat(date)
        except ValueError:
            raise NotFoundException(f"Slot {slot_id} not found", code="UNKNOWN_SLOT") from None
        for slot in virtual_slots(date, defaults):
            if slot.id == slot_id:
                return slot
        raise NotFoundException(f"Slot {slot_id} not found")

    async def _materialized_target(
        self, slot_id: str, defaults: SlotDefaults, change: Dict[str, Any]
    ) -> Slot:
        target = self._find_virtual(slot_id, defaults)
        if await self.configured(target.date):
            # The date was configured since this id was handed out
            raise ValidationException(
                f"Slots for {target.date} are already configured; reload and retry",
                code="STALE_VIRTUAL_SLOT",
            )
        persisted = await self.materialize(target.date, defaults, {slot_id: change})
        index = int(slot_id.rsplit("-", 1)[1])
        return persisted[index]

    async def add_slot(
        self,
        date: str,
        time: str,
        defaults: SlotDefaults,
        capacity: Optional[int] = None,
    ) -> Slot:
        if not time or not time.strip():
            raise ValidationException("Slot time is required")
        if not await self.configured(date):
            await self.materialize(date, defaults)
        slot = Slot(
            id=new_slot_id(),
            time=format_12h(time.strip()),
            date=date,
            is_active=True,
            capacity=capacity or defaults.capacity,
        )
        await self._insert([slot])
        return slot

    async def edit_slot(
        self,
        slot_id: str,
        defaults: SlotDefaults,
        time: Optional[str] = None,
        capacity: Optional[int] = None,
    ) -> Slot:
        change: Dict[str, Any] = {}
        if time:
            change["time"] = format_12h(time.strip())
        if capacity is not None:
            if capacity < 1:
                raise ValidationException("Capacity must be a positive number")
            change["capacity"] = capacity

        if is_virtual_id(slot_id):
            return await self._materialized_target(slot_id, defaults, change)
        slot = await self._get(slot_id)
        return await self._patch(slot, change) if change else slot

    async def toggle_slot(self, slot_id: str, defaults: SlotDefaults) -> Slot:
        if is_virtual_id(slot_id):
            current = self._find_virtual(slot_id, defaults)
            return await self._materialized_target(
                slot_id, defaults, {"is_active": not current.is_active}
            )
        slot = await self._get(slot_id)
        return await self._patch(slot, {"is_active": not slot.is_active})

    async def delete_slot(self, slot_id: str) -> None:
        if is_virtual_id(slot_id):
            raise ValidationException("Default slots are not stored and cannot be deleted")
        try:
            deleted = await self.store.delete(TABLE, [slot_id])
        except SQLAlchemyError as exc:
            raise BackendException(f"Could not delete slot: {exc}") from exc
        if not deleted:
            raise NotFoundException(f"Slot {slot_id} not found")

    async def replace_all(self, slots: List[Slot]) -> List[Slot]:
        """Swap the whole slot table for the given list."""
        for slot in slots:
            if slot.is_virtual or is_virtual_id(slot.id):
                raise ValidationException("Virtual slots cannot be stored as given", details={"id": slot.id})
        try:
            await self.store.delete_where_not(TABLE, "id", "")
        except SQLAlchemyError as exc:
            raise BackendException(f"Could not clear slots: {exc}") from exc
        await self._insert(slots)
        return slots


@dataclass
class SlotView:
    slot: Slot
    availability: Availability

    def as_dict(self) -> Dict[str, Any]:
        return {**asdict(self.slot), **asdict(self.availability)}


def availability_for_date(
    date: str,
    configured: Iterable[Slot],
    bookings: Iterable[Mapping[str, Any]],
    defaults: SlotDefaults,
) -> List[SlotView]:
    bookings = list(bookings)
    return [
        SlotView(slot, slot_availability(slot, date, bookings, defaults.capacity))
        for slot in resolve_slots(date, configured, defaults.capacity, defaults.times)
    ]
