import logging
from typing import Any, Dict, List

from sqlalchemy.exc import SQLAlchemyError

from database import RowStore, SchemaMismatchError

logger = logging.getLogger(__name__)

# table -> (attribute, order_by, descending)
_SOURCES = {
    "bookings": ("bookings", "date", True),
    "users": ("users", None, False),
    "kams": ("kams", "name", False),
    "packages": ("packages", "name", False),
    "training_slots": ("slots", "date", False),
}


class DataSnapshot:
    """
    Last-fetched copy of every table the dashboard shows.

    Each refresh replaces the collections wholesale. A table whose fetch fails
    keeps its previous contents, and does not stop the others from loading.
    """

    def __init__(self, store: RowStore):
        self.store = store
        self.bookings: List[Dict[str, Any]] = []
        self.users: List[Dict[str, Any]] = []
        self.kams: List[Dict[str, Any]] = []
        self.packages: List[Dict[str, Any]] = []
        self.slots: List[Dict[str, Any]] = []
        self.errors: Dict[str, str] = {}

    async def refresh(self) -> Dict[str, bool]:
        status = {}
        for table, (attr, order_by, descending) in _SOURCES.items():
            try:
                rows = await self.store.select(table, order_by=order_by, descending=descending)
            except (SQLAlchemyError, SchemaMismatchError) as exc:
                logger.warning("%s fetch failed, keeping %d cached row(s): %s",
                               table, len(getattr(self, attr)), exc)
                self.errors[table] = str(exc)
                status[table] = False
                continue
            setattr(self, attr, rows)
            self.errors.pop(table, None)
            status[table] = True
        return status
