import pytest

from bookings import BookingService, filter_bookings, paginate, resolve_ticket_id
from errors import NotFoundException, ValidationException
from models import PUBLIC_REQUEST_CATEGORY, BookingStatus

BOOKINGS = [
    {"id": "T-100", "client_name": "Acme Ltd", "package": "Premium", "kam_name": "John Doe",
     "date": "2024-06-10", "start_time": "10:00", "status": "To Do", "category": "Onboarding"},
    {"id": "T-101", "client_name": "Globex", "package": "Essential", "kam_name": "Sarah Connor",
     "date": "2024-06-11", "start_time": "12:00", "status": "Done", "category": "Onboarding"},
    {"id": "REQ-00000001-123", "client_name": "Initech", "package": "", "kam_name": "TBD",
     "date": "2024-06-10", "start_time": "10:00 AM", "status": "Pending", "category": PUBLIC_REQUEST_CATEGORY},
]


def new_booking(**overrides):
    data = {
        "id": "T-200",
        "client_name": "Acme Ltd",
        "assigned_person": "Trainer One",
        "kam_name": "John Doe",
        "date": "2024-06-12",
        "start_time": "11:00",
        "status": BookingStatus.TODO.value,
    }
    data.update(overrides)
    return data


def test_internal_views_exclude_public_requests():
    assert [b["id"] for b in filter_bookings(BOOKINGS)] == ["T-100", "T-101"]
    assert [b["id"] for b in filter_bookings(BOOKINGS, public_only=True)] == ["REQ-00000001-123"]
    assert len(filter_bookings(BOOKINGS, include_public=True)) == 3


def test_search_matches_id_client_package_and_kam():
    assert [b["id"] for b in filter_bookings(BOOKINGS, search="globex")] == ["T-101"]
    assert [b["id"] for b in filter_bookings(BOOKINGS, search="premium")] == ["T-100"]
    assert [b["id"] for b in filter_bookings(BOOKINGS, search="sarah")] == ["T-101"]
    assert [b["id"] for b in filter_bookings(BOOKINGS, search="t-10")] == ["T-100", "T-101"]


def test_date_and_range_filters():
    assert [b["id"] for b in filter_bookings(BOOKINGS, date="2024-06-11")] == ["T-101"]
    in_range = filter_bookings(BOOKINGS, start_date="2024-06-09", end_date="2024-06-10", include_public=True)
    assert [b["id"] for b in in_range] == ["T-100", "REQ-00000001-123"]
    assert [b["id"] for b in filter_bookings(BOOKINGS, status="Done")] == ["T-101"]


def test_paginate():
    page = paginate(list(range(23)), page=3, page_size=10)
    assert page["items"] == [20, 21, 22]
    assert page["pages"] == 3
    assert page["total"] == 23

    assert paginate([], page=4)["page"] == 1
    assert paginate(list(range(5)), page=9, page_size=2)["items"] == [4]


def test_ticket_lookup():
    lookup = [("TCK-1", "Globex"), ("TCK-2", " acme ltd ")]
    assert resolve_ticket_id("Acme Ltd", lookup) == "TCK-2"
    assert resolve_ticket_id("Unknown", lookup) is None
    assert resolve_ticket_id("", lookup) is None


@pytest.mark.asyncio
async def test_create_records_history(fake_store):
    service = BookingService(fake_store)

    created = await service.create(new_booking(history=[{"fake": True}]), user="Admin")

    row = fake_store.rows("bookings")[0]
    assert row["id"] == "T-200"
    assert created["created_at"]
    assert [h["action"] for h in row["history"]] == ["Created"]
    assert row["history"][0]["user"] == "Admin"


@pytest.mark.asyncio
async def test_create_fills_id_from_lookup(fake_store):
    service = BookingService(fake_store)

    created = await service.create(new_booking(id=None), "Admin", ticket_lookup=[("TCK-9", "Acme Ltd")])

    assert created["id"] == "TCK-9"


@pytest.mark.asyncio
async def test_create_without_any_id_fails_locally(fake_store):
    service = BookingService(fake_store)

    with pytest.raises(ValidationException):
        await service.create(new_booking(id=""), "Admin")
    assert fake_store.writes() == []


@pytest.mark.asyncio
async def test_full_edit_appends_history_and_keeps_identity(fake_store):
    service = BookingService(fake_store)
    await service.create(new_booking(), "Admin")

    updated = await service.update(
        "T-200", new_booking(id="HACK", location="Dhaka", created_at="x"), "Editor", comment="moved"
    )

    row = fake_store.rows("bookings")[0]
    assert row["id"] == "T-200"
    assert row["location"] == "Dhaka"
    assert row["created_at"] != "x"
    assert [h["action"] for h in row["history"]] == ["Created", "Updated"]
    assert row["history"][1]["comment"] == "moved"
    assert updated["location"] == "Dhaka"


@pytest.mark.asyncio
async def test_quick_edit_limited_fields(fake_store):
    service = BookingService(fake_store)
    await service.create(new_booking(), "Admin")

    with pytest.raises(ValidationException):
        await service.quick_edit("T-200", {"location": "Elsewhere"}, "Admin")

    edited = await service.quick_edit("T-200", {"status": BookingStatus.CANCELLED.value}, "Admin")
    assert edited["status"] == "Cancelled"
    assert edited["history"][-1]["action"] == "Quick edit: status To Do -> Cancelled"


@pytest.mark.asyncio
async def test_missing_booking(fake_store):
    service = BookingService(fake_store)

    with pytest.raises(NotFoundException):
        await service.update("nope", new_booking(), "Admin")
    with pytest.raises(NotFoundException):
        await service.delete("nope")


@pytest.mark.asyncio
async def test_bulk_delete(fake_store):
    service = BookingService(fake_store)
    for ticket in ("A", "B", "C"):
        await service.create(new_booking(id=ticket), "Admin")

    assert await service.bulk_delete(["A", "C", "missing"]) == 2
    assert [r["id"] for r in fake_store.rows("bookings")] == ["B"]
    with pytest.raises(ValidationException):
        await service.bulk_delete([])
