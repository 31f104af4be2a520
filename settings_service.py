import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from config import settings as app_settings
from database import RowStore, SchemaMismatchError
from errors import BackendException
from models import SystemSettings
from slots import DEFAULT_SLOT_TIMES, SlotDefaults

logger = logging.getLogger(__name__)

TABLE = "settings"


def _tutorials_from_row(value: Any) -> List[Dict[str, Any]]:
    # Rows written by the stringified fallback hold JSON text
    if isinstance(value, str):
        try:
            value = json.loads(value) if value else []
        except ValueError:
            logger.warning("Ignoring unreadable tutorials value in settings row")
            return []
    return list(value or [])


class SettingsService:
    """
    Holds the singleton settings row for the process.

    The row is read by load() at startup and again only when refresh() is
    called. Consumers that captured slot_defaults() keep their copy until
    they are explicitly handed a new one.
    """

    def __init__(
        self,
        store: RowStore,
        row_id: int = app_settings.settings_row_id,
        default_capacity: int = app_settings.default_slot_capacity,
    ):
        self.store = store
        self.row_id = row_id
        self.default_capacity = default_capacity
        self.current = SystemSettings(
            id=row_id,
            panel_name=app_settings.panel_name,
            slot_capacity=default_capacity,
        )
        self.loaded = False

    async def load(self) -> SystemSettings:
        try:
            row = await self.store.get(TABLE, self.row_id)
        except SQLAlchemyError as exc:
            # Keep whatever we had; the service stays usable on stale values
            logger.warning("Settings fetch failed, keeping previous values: %s", exc)
            return self.current

        if row is not None:
            self.current = SystemSettings(
                id=self.row_id,
                panel_name=row.get("panel_name") or self.current.panel_name,
                logo=row.get("logo") or "",
                slot_capacity=row.get("slot_capacity") or self.default_capacity,
                tutorials=_tutorials_from_row(row.get("tutorials")),
            )
        self.loaded = True
        return self.current

    async def refresh(self) -> SystemSettings:
        logger.info("Reloading system settings")
        self.store.invalidate(TABLE)
        return await self.load()

    def slot_defaults(self) -> SlotDefaults:
        return SlotDefaults(
            capacity=self.current.slot_capacity or self.default_capacity,
            times=DEFAULT_SLOT_TIMES,
        )

    async def save(
        self,
        panel_name: Optional[str] = None,
        logo: Optional[str] = None,
        slot_capacity: Optional[int] = None,
        tutorials: Optional[List[Dict[str, Any]]] = None,
    ) -> SystemSettings:
        updated = SystemSettings(
            id=self.row_id,
            panel_name=self.current.panel_name if panel_name is None else panel_name,
            logo=self.current.logo if logo is None else logo,
            slot_capacity=self.current.slot_capacity if slot_capacity is None else slot_capacity,
            tutorials=list(self.current.tutorials if tutorials is None else tutorials),
        )
        base = {
            "id": updated.id,
            "panel_name": updated.panel_name,
            "logo": updated.logo,
            "slot_capacity": updated.slot_capacity,
        }
        # Progressively smaller payloads for tables whose tutorials column is
        # JSON, plain text, or absent.
        shapes = [
            ("json", {**base, "tutorials": updated.tutorials}),
            ("text", {**base, "tutorials": json.dumps(updated.tutorials)}),
            ("omitted", base),
        ]

        last_error: Optional[SchemaMismatchError] = None
        for label, payload in shapes:
            try:
                await self.store.upsert(TABLE, payload, on_conflict="id")
            except SchemaMismatchError as exc:
                logger.warning("Settings upsert (%s tutorials) rejected: %s", label, exc)
                last_error = exc
                continue
            except SQLAlchemyError as exc:
                raise BackendException(f"Could not save settings: {exc}") from exc
            if label != "json":
                logger.warning("Settings saved with %s tutorials", label)
            self.current = updated
            return updated

        raise BackendException(
            f"Could not save settings: {last_error}",
            details={"columns": last_error.columns if last_error else []},
        )
