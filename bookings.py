import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from database import RowStore, SchemaMismatchError
from errors import BackendException, NotFoundException, ValidationException
from models import PUBLIC_REQUEST_CATEGORY, BookingStatus

logger = logging.getLogger(__name__)

TABLE = "bookings"
QUICK_EDIT_FIELDS = ("status", "date", "start_time", "client_name")
# Set once at creation; full edits never overwrite them
IMMUTABLE_FIELDS = ("id", "created_at", "history")


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def history_entry(user: str, action: str, comment: Optional[str] = None) -> Dict[str, Any]:
    entry = {"timestamp": now_iso(), "user": user, "action": action}
    if comment:
        entry["comment"] = comment
    return entry


def is_public_request(booking: Mapping[str, Any]) -> bool:
    return booking.get("category") == PUBLIC_REQUEST_CATEGORY


def resolve_ticket_id(client_name: str, lookup: Iterable[Tuple[str, str]]) -> Optional[str]:
    """First ticket id whose client name matches, ignoring case and surrounding spaces."""
    wanted = (client_name or "").strip().lower()
    if not wanted:
        return None
    for ticket_id, name in lookup:
        if (name or "").strip().lower() == wanted and ticket_id:
            return ticket_id.strip()
    return None


def filter_bookings(
    bookings: Iterable[Mapping[str, Any]],
    search: str = "",
    date: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    status: Optional[str] = None,
    include_public: bool = False,
    public_only: bool = False,
) -> List[Dict[str, Any]]:
    term = (search or "").strip().lower()
    result = []
    for b in bookings:
        public = is_public_request(b)
        if public_only and not public:
            continue
        if not public_only and public and not include_public:
            continue
        if term and not any(
            term in str(b.get(key) or "").lower()
            for key in ("id", "client_name", "package", "kam_name")
        ):
            continue
        if start_date and end_date:
            # ISO dates compare correctly as strings
            if not (start_date <= (b.get("date") or "") <= end_date):
                continue
        elif date and b.get("date") != date:
            continue
        if status and b.get("status") != status:
            continue
        result.append(dict(b))
    return result


def paginate(items: Sequence[Any], page: int = 1, page_size: int = 10) -> Dict[str, Any]:
    page_size = max(1, page_size)
    total = len(items)
    pages = max(1, math.ceil(total / page_size))
    page = min(max(1, page), pages)
    start = (page - 1) * page_size
    return {
        "items": list(items[start:start + page_size]),
        "total": total,
        "page": page,
        "page_size": page_size,
        "pages": pages,
    }


class BookingService:
    def __init__(self, store: RowStore):
        self.store = store

    async def list(self) -> List[Dict[str, Any]]:
        try:
            return await self.store.select(TABLE, order_by="date", descending=True)
        except SQLAlchemyError as exc:
            raise BackendException(f"Could not load bookings: {exc}") from exc

    async def for_date(self, day: str) -> List[Dict[str, Any]]:
        try:
            return await self.store.select(TABLE, date=day)
        except SQLAlchemyError as exc:
            raise BackendException(f"Could not load bookings: {exc}") from exc

    async def get(self, booking_id: str) -> Dict[str, Any]:
        try:
            row = await self.store.get(TABLE, booking_id)
        except SQLAlchemyError as exc:
            raise BackendException(f"Could not load booking: {exc}") from exc
        if row is None:
            raise NotFoundException(f"Booking {booking_id} not found")
        return row

    async def create(
        self,
        data: Dict[str, Any],
        user: str,
        ticket_lookup: Iterable[Tuple[str, str]] = (),
    ) -> Dict[str, Any]:
        booking = {k: v for k, v in data.items() if k not in IMMUTABLE_FIELDS}
        booking_id = (data.get("id") or "").strip() or resolve_ticket_id(
            data.get("client_name", ""), ticket_lookup
        )
        if not booking_id:
            raise ValidationException("Ticket ID is required", code="MISSING_TICKET_ID")
        if not (data.get("client_name") or "").strip():
            raise ValidationException("Client name is required", code="MISSING_FIELDS")
        if not data.get("date"):
            raise ValidationException("Training date is required", code="MISSING_FIELDS")

        booking.update(
            id=booking_id,
            status=booking.get("status") or BookingStatus.TODO.value,
            created_at=now_iso(),
            history=[history_entry(user, "Created")],
        )
        try:
            await self.store.insert(TABLE, [booking])
        except IntegrityError as exc:
            raise ValidationException(
                f"Booking {booking_id} already exists", code="DUPLICATE_TICKET_ID"
            ) from exc
        except (SQLAlchemyError, SchemaMismatchError) as exc:
            raise BackendException(f"Error saving booking: {exc}") from exc
        logger.info("Booking %s created by %s", booking_id, user)
        return booking

    async def _write(self, booking_id: str, patch: Dict[str, Any]) -> None:
        try:
            await self.store.update(TABLE, patch, booking_id)
        except (SQLAlchemyError, SchemaMismatchError) as exc:
            raise BackendException(f"Error saving booking: {exc}") from exc

    async def update(
        self, booking_id: str, data: Dict[str, Any], user: str, comment: Optional[str] = None
    ) -> Dict[str, Any]:
        existing = await self.get(booking_id)
        patch = {k: v for k, v in data.items() if k not in IMMUTABLE_FIELDS}
        patch["history"] = list(existing.get("history") or []) + [
            history_entry(user, "Updated", comment)
        ]
        await self._write(booking_id, patch)
        logger.info("Booking %s updated by %s", booking_id, user)
        return {**existing, **patch}

    async def quick_edit(
        self, booking_id: str, changes: Dict[str, Any], user: str, comment: Optional[str] = None
    ) -> Dict[str, Any]:
        extra = set(changes) - set(QUICK_EDIT_FIELDS)
        if extra:
            raise ValidationException(
                "Quick edit only changes status, date, time or client",
                code="INVALID_FIELDS",
                details={"fields": sorted(extra)},
            )
        patch = {k: v for k, v in changes.items() if v is not None}
        if not patch:
            raise ValidationException("Nothing to change", code="EMPTY_PATCH")

        existing = await self.get(booking_id)
        action = "Quick edit: " + ", ".join(
            f"{k} {existing.get(k)!s} -> {v!s}" for k, v in patch.items()
        )
        patch["history"] = list(existing.get("history") or []) + [
            history_entry(user, action, comment)
        ]
        await self._write(booking_id, patch)
        return {**existing, **patch}

    async def delete(self, booking_id: str) -> None:
        try:
            deleted = await self.store.delete(TABLE, [booking_id])
        except SQLAlchemyError as exc:
            raise BackendException(f"Could not delete booking: {exc}") from exc
        if not deleted:
            raise NotFoundException(f"Booking {booking_id} not found")
        logger.info("Booking %s deleted", booking_id)

    async def bulk_delete(self, booking_ids: Iterable[str]) -> int:
        ids = [i for i in booking_ids if i]
        if not ids:
            raise ValidationException("No bookings selected", code="EMPTY_SELECTION")
        try:
            deleted = await self.store.delete(TABLE, ids)
        except SQLAlchemyError as exc:
            raise BackendException(f"Could not delete bookings: {exc}") from exc
        logger.info("Deleted %d of %d selected booking(s)", deleted, len(ids))
        return deleted
