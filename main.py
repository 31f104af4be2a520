from datetime import date
from typing import List

from fastapi import APIRouter, Depends, FastAPI, status
from fastapi.middleware.cors import CORSMiddleware

import admin
from booking_portal import PublicBookingPortal, PublicBookingRequest
from config import configure_logging, settings
from database import RowStore, init_db, store as default_store
from dependencies import get_portal, get_settings_service
from errors import register_error_handlers
from schemas import PublicBookingIn, PublicBookingOut, SettingsOut, SlotOut
from settings_service import SettingsService
from snapshot import DataSnapshot

router = APIRouter(prefix="/public", tags=["public"])


# --- GET /public/slots ---
@router.get("/slots", response_model=List[SlotOut])
async def get_public_slots(
    target_date: date,
    portal: PublicBookingPortal = Depends(get_portal),
):
    views = await portal.slots(target_date.isoformat())
    return [v.as_dict() for v in views]


# --- POST /public/bookings ---
@router.post("/bookings", response_model=PublicBookingOut, status_code=status.HTTP_201_CREATED)
async def create_public_booking(
    booking_data: PublicBookingIn,
    portal: PublicBookingPortal = Depends(get_portal),
):
    result = await portal.submit(PublicBookingRequest(**booking_data.model_dump()))
    return {
        "message": "Booking successful",
        "id": result.booking_id,
        "date": result.booking["date"],
        "slot_time": result.booking["start_time"],
    }


@router.get("/settings", response_model=SettingsOut)
async def get_public_settings(settings_service: SettingsService = Depends(get_settings_service)):
    return settings_service.current.model_dump()


def create_app(store: RowStore = default_store) -> FastAPI:
    app = FastAPI(title="Training Booking Management")

    settings_service = SettingsService(store)
    snapshot = DataSnapshot(store)
    app.state.store = store
    app.state.settings_service = settings_service
    app.state.snapshot = snapshot
    app.state.portal = PublicBookingPortal(
        store, settings_service.slot_defaults(), on_success=snapshot.refresh
    )

    @app.on_event("startup")
    async def on_startup():
        configure_logging()
        await init_db(store.engine)
        # Settings are read once here; later changes need an explicit refresh
        await settings_service.load()
        app.state.portal.reload_defaults(settings_service.slot_defaults())
        await snapshot.refresh()

    register_error_handlers(app)
    app.include_router(router)
    app.include_router(admin.router)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    return app


app = create_app()
