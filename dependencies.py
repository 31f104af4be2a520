from fastapi import Header, Request

from booking_portal import PublicBookingPortal
from bookings import BookingService
from database import RowStore
from directory import NamedListService, UserService
from settings_service import SettingsService
from slots import SlotService
from snapshot import DataSnapshot


def get_store(request: Request) -> RowStore:
    return request.app.state.store


def get_settings_service(request: Request) -> SettingsService:
    return request.app.state.settings_service


def get_portal(request: Request) -> PublicBookingPortal:
    return request.app.state.portal


def get_snapshot(request: Request) -> DataSnapshot:
    return request.app.state.snapshot


def get_booking_service(request: Request) -> BookingService:
    return BookingService(get_store(request))


def get_slot_service(request: Request) -> SlotService:
    return SlotService(get_store(request))


def get_user_service(request: Request) -> UserService:
    return UserService(get_store(request))


def get_kam_service(request: Request) -> NamedListService:
    return NamedListService(get_store(request), "kams")


def get_package_service(request: Request) -> NamedListService:
    return NamedListService(get_store(request), "packages")


def get_acting_user(x_acting_user: str = Header(default="Admin")) -> str:
    # Advisory only: recorded in booking history, never checked
    return x_acting_user
