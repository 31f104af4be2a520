from dataclasses import asdict
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from booking_portal import PublicBookingPortal
from bookings import BookingService, filter_bookings, paginate
from dependencies import (
    get_acting_user,
    get_booking_service,
    get_kam_service,
    get_package_service,
    get_portal,
    get_settings_service,
    get_slot_service,
    get_snapshot,
    get_user_service,
)
from directory import NamedListService, UserService
from reports import active_schedule, dashboard_stats, monthly_analytics, training_report
from schemas import (
    BookingCreate,
    BookingOut,
    BookingPage,
    BookingQuickEdit,
    BookingUpdate,
    BulkDelete,
    NamedItemIn,
    NamedItemOut,
    SettingsIn,
    SettingsOut,
    SlotCreate,
    SlotEdit,
    SlotIn,
    SlotOut,
    UserIn,
    UserOut,
    UserUpdate,
)
from settings_service import SettingsService
from slots import Slot, SlotService, availability_for_date
from snapshot import DataSnapshot

router = APIRouter(prefix="/admin", tags=["admin"])


# --- Bookings ---

@router.get("/bookings", response_model=BookingPage)
async def list_bookings(
    search: str = "",
    target_date: Optional[date] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    booking_status: Optional[str] = None,
    include_public: bool = False,
    page: int = 1,
    page_size: int = 10,
    service: BookingService = Depends(get_booking_service),
):
    rows = filter_bookings(
        await service.list(),
        search=search,
        date=target_date.isoformat() if target_date else None,
        start_date=start_date.isoformat() if start_date else None,
        end_date=end_date.isoformat() if end_date else None,
        status=booking_status,
        include_public=include_public,
    )
    return paginate(rows, page=page, page_size=page_size)


@router.get("/bookings/public-requests", response_model=List[BookingOut])
async def list_public_requests(
    search: str = "",
    service: BookingService = Depends(get_booking_service),
):
    return filter_bookings(await service.list(), search=search, public_only=True)


@router.get("/bookings/{booking_id}", response_model=BookingOut)
async def get_booking(booking_id: str, service: BookingService = Depends(get_booking_service)):
    return await service.get(booking_id)


@router.post("/bookings", response_model=BookingOut, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    service: BookingService = Depends(get_booking_service),
    user: str = Depends(get_acting_user),
):
    data = booking_data.model_dump(mode="json", exclude={"ticket_lookup"})
    lookup = [(row[0], row[1]) for row in booking_data.ticket_lookup if len(row) >= 2]
    return await service.create(data, user, ticket_lookup=lookup)


@router.put("/bookings/{booking_id}", response_model=BookingOut)
async def update_booking(
    booking_id: str,
    booking_data: BookingUpdate,
    service: BookingService = Depends(get_booking_service),
    user: str = Depends(get_acting_user),
):
    # Fields left out of the body keep their stored values
    data = booking_data.model_dump(mode="json", exclude={"comment"}, exclude_unset=True)
    return await service.update(booking_id, data, user, comment=booking_data.comment)


@router.patch("/bookings/{booking_id}", response_model=BookingOut)
async def quick_edit_booking(
    booking_id: str,
    changes: BookingQuickEdit,
    service: BookingService = Depends(get_booking_service),
    user: str = Depends(get_acting_user),
):
    patch = changes.model_dump(mode="json", exclude={"comment"}, exclude_none=True)
    return await service.quick_edit(booking_id, patch, user, comment=changes.comment)


@router.delete("/bookings/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_booking(booking_id: str, service: BookingService = Depends(get_booking_service)):
    await service.delete(booking_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/bookings/bulk-delete")
async def bulk_delete_bookings(body: BulkDelete, service: BookingService = Depends(get_booking_service)):
    deleted = await service.bulk_delete(body.ids)
    return {"deleted": deleted}


@router.get("/schedule", response_model=List[BookingOut])
async def get_schedule(target_date: date, service: BookingService = Depends(get_booking_service)):
    return active_schedule(await service.for_date(target_date.isoformat()), target_date.isoformat())


@router.get("/reports")
async def get_report(
    search: str = "",
    target_date: Optional[date] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    service: BookingService = Depends(get_booking_service),
):
    return training_report(
        await service.list(),
        search=search,
        day=target_date.isoformat() if target_date else None,
        start_date=start_date.isoformat() if start_date else None,
        end_date=end_date.isoformat() if end_date else None,
    )


# --- Slots ---

@router.get("/slots", response_model=List[SlotOut])
async def list_slots(
    target_date: date,
    slots: SlotService = Depends(get_slot_service),
    bookings: BookingService = Depends(get_booking_service),
    settings_service: SettingsService = Depends(get_settings_service),
):
    day = target_date.isoformat()
    views = availability_for_date(
        day, await slots.configured(day), await bookings.for_date(day), settings_service.slot_defaults()
    )
    return [v.as_dict() for v in views]


@router.post("/slots", response_model=SlotOut, status_code=status.HTTP_201_CREATED)
async def add_slot(
    body: SlotCreate,
    slots: SlotService = Depends(get_slot_service),
    settings_service: SettingsService = Depends(get_settings_service),
):
    slot = await slots.add_slot(
        body.date.isoformat(), body.time, settings_service.slot_defaults(), capacity=body.capacity
    )
    return asdict(slot)


@router.put("/slots", response_model=List[SlotOut])
async def replace_slots(body: List[SlotIn], slots: SlotService = Depends(get_slot_service)):
    replaced = await slots.replace_all([
        Slot(id=s.id, time=s.time, date=s.date.isoformat(), is_active=s.is_active, capacity=s.capacity)
        for s in body
    ])
    return [asdict(s) for s in replaced]


@router.patch("/slots/{slot_id}", response_model=SlotOut)
async def edit_slot(
    slot_id: str,
    body: SlotEdit,
    slots: SlotService = Depends(get_slot_service),
    settings_service: SettingsService = Depends(get_settings_service),
):
    slot = await slots.edit_slot(
        slot_id, settings_service.slot_defaults(), time=body.time, capacity=body.capacity
    )
    return asdict(slot)


@router.post("/slots/{slot_id}/toggle", response_model=SlotOut)
async def toggle_slot(
    slot_id: str,
    slots: SlotService = Depends(get_slot_service),
    settings_service: SettingsService = Depends(get_settings_service),
):
    slot = await slots.toggle_slot(slot_id, settings_service.slot_defaults())
    return asdict(slot)


@router.delete("/slots/{slot_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_slot(slot_id: str, slots: SlotService = Depends(get_slot_service)):
    await slots.delete_slot(slot_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Settings ---

@router.get("/settings", response_model=SettingsOut)
async def get_settings(settings_service: SettingsService = Depends(get_settings_service)):
    return settings_service.current.model_dump()


@router.put("/settings", response_model=SettingsOut)
async def save_settings(
    body: SettingsIn,
    settings_service: SettingsService = Depends(get_settings_service),
):
    saved = await settings_service.save(**body.model_dump())
    return saved.model_dump()


@router.post("/settings/refresh", response_model=SettingsOut)
async def refresh_settings(
    settings_service: SettingsService = Depends(get_settings_service),
    portal: PublicBookingPortal = Depends(get_portal),
):
    current = await settings_service.refresh()
    portal.reload_defaults(settings_service.slot_defaults())
    return current.model_dump()


# --- Users, KAMs, packages ---

@router.get("/users", response_model=List[UserOut])
async def list_users(users: UserService = Depends(get_user_service)):
    return await users.list()


@router.post("/users", response_model=UserOut, status_code=status.HTTP_201_CREATED)
async def add_user(body: UserIn, users: UserService = Depends(get_user_service)):
    return await users.create(body.model_dump(mode="json"))


@router.patch("/users/{user_id}", response_model=UserOut)
async def update_user(user_id: str, body: UserUpdate, users: UserService = Depends(get_user_service)):
    return await users.update(user_id, body.model_dump(mode="json", exclude_none=True))


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(user_id: str, users: UserService = Depends(get_user_service)):
    await users.delete(user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/kams", response_model=List[NamedItemOut])
async def list_kams(kams: NamedListService = Depends(get_kam_service)):
    return await kams.list()


@router.post("/kams", response_model=NamedItemOut, status_code=status.HTTP_201_CREATED)
async def add_kam(body: NamedItemIn, kams: NamedListService = Depends(get_kam_service)):
    return await kams.add(body.name)


@router.delete("/kams/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_kam(item_id: int, kams: NamedListService = Depends(get_kam_service)):
    await kams.remove(item_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/packages", response_model=List[NamedItemOut])
async def list_packages(packages: NamedListService = Depends(get_package_service)):
    return await packages.list()


@router.post("/packages", response_model=NamedItemOut, status_code=status.HTTP_201_CREATED)
async def add_package(body: NamedItemIn, packages: NamedListService = Depends(get_package_service)):
    return await packages.add(body.name)


@router.delete("/packages/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_package(item_id: int, packages: NamedListService = Depends(get_package_service)):
    await packages.remove(item_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Dashboard & analytics (served from the refreshed snapshot) ---

@router.get("/dashboard")
async def get_dashboard(
    today: Optional[date] = None,
    snapshot: DataSnapshot = Depends(get_snapshot),
):
    loaded = await snapshot.refresh()
    return {
        "stats": dashboard_stats(snapshot.bookings, snapshot.users, today or date.today()),
        "loaded": loaded,
        "errors": snapshot.errors,
    }


@router.get("/analytics")
async def get_analytics(
    year: int = Query(ge=2000, le=2100),
    month: int = Query(ge=1, le=12),
    snapshot: DataSnapshot = Depends(get_snapshot),
):
    await snapshot.refresh()
    return monthly_analytics(snapshot.bookings, snapshot.users, year, month)
