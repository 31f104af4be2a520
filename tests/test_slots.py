import pytest

from errors import NotFoundException, ValidationException
from models import BookingStatus
from slots import (
    DEFAULT_SLOT_TIMES,
    Slot,
    SlotDefaults,
    SlotService,
    availability_for_date,
    date_of_virtual_id,
    resolve_slots,
    slot_availability,
)

DAY = "2024-06-10"


def booking(time="10:00 AM", day=DAY, status=BookingStatus.PENDING.value):
    return {"date": day, "start_time": time, "status": status}


def test_empty_date_gets_four_virtual_default_slots():
    slots = resolve_slots(DAY, [], default_capacity=3)

    assert [s.time for s in slots] == list(DEFAULT_SLOT_TIMES)
    assert all(s.is_virtual and s.is_active and s.capacity == 3 for s in slots)
    assert all(s.date == DAY for s in slots)
    assert resolve_slots(DAY, [], default_capacity=3) == slots


def test_configured_slots_replace_defaults_in_input_order():
    configured = [
        Slot(id="b", time="04:00 PM", date=DAY, capacity=5),
        Slot(id="x", time="09:00 AM", date="2024-06-11", capacity=5),
        Slot(id="a", time="08:00 AM", date=DAY, capacity=5),
    ]
    slots = resolve_slots(DAY, configured, default_capacity=2)

    assert [s.id for s in slots] == ["b", "a"]
    assert not any(s.is_virtual for s in slots)


def test_slot_fills_at_capacity_and_reopens_after_cancellation():
    slot = Slot(id="s1", time="10:00 AM", date=DAY, capacity=2)
    bookings = [booking(), booking(time="10:00")]

    full = slot_availability(slot, DAY, bookings, default_capacity=2)
    assert full.is_full is True
    assert full.count == 0

    bookings[0]["status"] = BookingStatus.CANCELLED.value
    reopened = slot_availability(slot, DAY, bookings, default_capacity=2)
    assert reopened.is_full is False
    assert reopened.count == 1


def test_cancelled_bookings_never_count():
    slot = Slot(id="s1", time="10:00 AM", date=DAY, capacity=1)
    bookings = [booking(status=BookingStatus.CANCELLED.value) for _ in range(5)]

    availability = slot_availability(slot, DAY, bookings, default_capacity=1)
    assert availability.count == 1
    assert not availability.is_full


def test_other_dates_and_times_are_ignored():
    slot = Slot(id="s1", time="03:00 PM", date=DAY, capacity=2)
    bookings = [booking(time="15:00"), booking(time="03:00 PM", day="2024-06-11"), booking(time="05:00 PM")]

    assert slot_availability(slot, DAY, bookings, default_capacity=2).count == 1


def test_deactivated_slot_is_full():
    slot = Slot(id="s1", time="10:00 AM", date=DAY, capacity=4, is_active=False)

    availability = slot_availability(slot, DAY, [], default_capacity=2)
    assert availability.is_deactivated
    assert availability.is_full
    assert availability.count == 0


def test_zero_capacity_falls_back_to_default():
    slot = Slot(id="s1", time="10:00 AM", date=DAY, capacity=0)

    availability = slot_availability(slot, DAY, [booking()], default_capacity=3)
    assert availability.capacity == 3
    assert availability.count == 2


def test_availability_for_date_merges_slot_and_counts():
    views = availability_for_date(DAY, [], [booking()], SlotDefaults(capacity=2))

    first = views[0].as_dict()
    assert first["id"] == f"virtual-{DAY}-0"
    assert first["is_virtual"] is True
    assert first["count"] == 1
    assert first["is_full"] is False


def test_virtual_id_carries_its_date():
    assert date_of_virtual_id(f"virtual-{DAY}-3") == DAY


@pytest.mark.asyncio
async def test_toggling_virtual_slot_materializes_whole_day(fake_store):
    service = SlotService(fake_store)
    defaults = SlotDefaults(capacity=2)

    slot = await service.toggle_slot(f"virtual-{DAY}-1", defaults)

    rows = fake_store.rows("training_slots")
    assert len(rows) == 4
    assert [r["time"] for r in rows] == list(DEFAULT_SLOT_TIMES)
    assert [r["is_active"] for r in rows] == [True, False, True, True]
    assert all(r["id"].startswith("slot-") for r in rows)
    assert slot.time == "12:00 PM" and slot.is_active is False
    assert "is_virtual" not in rows[0]

    resolved = await service.for_date(DAY, defaults)
    assert not any(s.is_virtual for s in resolved)


@pytest.mark.asyncio
async def test_editing_virtual_slot_changes_only_target(fake_store):
    service = SlotService(fake_store)

    slot = await service.edit_slot(f"virtual-{DAY}-0", SlotDefaults(capacity=2), time="09:30", capacity=6)

    rows = fake_store.rows("training_slots")
    assert slot.time == "09:30 AM" and slot.capacity == 6
    assert [(r["time"], r["capacity"]) for r in rows] == [
        ("09:30 AM", 6), ("12:00 PM", 2), ("03:00 PM", 2), ("05:00 PM", 2),
    ]


@pytest.mark.asyncio
async def test_stale_virtual_id_is_rejected_once_day_is_configured(fake_store):
    service = SlotService(fake_store)
    defaults = SlotDefaults(capacity=2)
    await service.toggle_slot(f"virtual-{DAY}-0", defaults)

    with pytest.raises(ValidationException):
        await service.toggle_slot(f"virtual-{DAY}-2", defaults)
    assert len(fake_store.rows("training_slots")) == 4


@pytest.mark.asyncio
@pytest.mark.parametrize("slot_id", ["virtual-garbage-0", "virtual-2024-13-40-1", f"virtual-{DAY}-9"])
async def test_malformed_virtual_id_writes_nothing(fake_store, slot_id):
    service = SlotService(fake_store)
    defaults = SlotDefaults(capacity=2)

    with pytest.raises(NotFoundException):
        await service.toggle_slot(slot_id, defaults)
    with pytest.raises(NotFoundException):
        await service.edit_slot(slot_id, defaults, capacity=3)
    assert fake_store.writes() == []


@pytest.mark.asyncio
async def test_adding_slot_to_default_day_keeps_defaults(fake_store):
    service = SlotService(fake_store)

    slot = await service.add_slot(DAY, "18:00", SlotDefaults(capacity=2))

    times = [r["time"] for r in fake_store.rows("training_slots")]
    assert times == list(DEFAULT_SLOT_TIMES) + ["06:00 PM"]
    assert slot.capacity == 2


@pytest.mark.asyncio
async def test_editing_persisted_slot_updates_in_place(fake_store):
    fake_store.rows("training_slots").append(
        {"id": "slot-1", "time": "10:00 AM", "is_active": True, "capacity": 2, "date": DAY}
    )
    service = SlotService(fake_store)

    slot = await service.edit_slot("slot-1", SlotDefaults(capacity=2), capacity=5)
    toggled = await service.toggle_slot("slot-1", SlotDefaults(capacity=2))

    assert slot.capacity == 5
    assert toggled.is_active is False
    assert fake_store.rows("training_slots") == [
        {"id": "slot-1", "time": "10:00 AM", "is_active": False, "capacity": 5, "date": DAY}
    ]


@pytest.mark.asyncio
async def test_delete_rules(fake_store):
    service = SlotService(fake_store)

    with pytest.raises(ValidationException):
        await service.delete_slot(f"virtual-{DAY}-0")
    with pytest.raises(NotFoundException):
        await service.delete_slot("slot-missing")


@pytest.mark.asyncio
async def test_replace_all_clears_table_first(fake_store):
    fake_store.rows("training_slots").append({"id": "old", "time": "10:00 AM", "date": DAY})
    service = SlotService(fake_store)

    await service.replace_all([Slot(id="new", time="11:00 AM", date=DAY, capacity=3)])

    assert fake_store.writes("training_slots")[0] == ("delete_where_not", "training_slots", "id", "")
    assert [r["id"] for r in fake_store.rows("training_slots")] == ["new"]
