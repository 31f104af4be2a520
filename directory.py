import logging
from typing import Any, Dict, List

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from database import RowStore, SchemaMismatchError
from errors import BackendException, NotFoundException, ValidationException

logger = logging.getLogger(__name__)


def public_user(row: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in row.items() if k != "password"}


class UserService:
    TABLE = "users"

    def __init__(self, store: RowStore):
        self.store = store

    async def list(self) -> List[Dict[str, Any]]:
        try:
            rows = await self.store.select(self.TABLE, order_by="name")
        except SQLAlchemyError as exc:
            raise BackendException(f"Could not load users: {exc}") from exc
        return [public_user(r) for r in rows]

    async def create(self, user: Dict[str, Any]) -> Dict[str, Any]:
        try:
            await self.store.insert(self.TABLE, [user])
        except IntegrityError as exc:
            raise ValidationException(f"User {user.get('id')} already exists", code="DUPLICATE_USER") from exc
        except (SQLAlchemyError, SchemaMismatchError) as exc:
            raise BackendException(f"Error adding user: {exc}") from exc
        logger.info("User %s created", user.get("id"))
        return public_user(user)

    async def update(self, user_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        try:
            existing = await self.store.get(self.TABLE, user_id)
            if existing is None:
                raise NotFoundException(f"User {user_id} not found")
            if patch:
                await self.store.update(self.TABLE, patch, user_id)
        except (SQLAlchemyError, SchemaMismatchError) as exc:
            raise BackendException(f"Error updating user: {exc}") from exc
        return public_user({**existing, **patch})

    async def delete(self, user_id: str) -> None:
        try:
            deleted = await self.store.delete(self.TABLE, [user_id])
        except SQLAlchemyError as exc:
            raise BackendException(f"Could not delete user: {exc}") from exc
        if not deleted:
            raise NotFoundException(f"User {user_id} not found")


class NamedListService:
    """KAM names and package names: plain lists of unique strings."""

    def __init__(self, store: RowStore, table: str):
        self.store = store
        self.table = table

    async def list(self) -> List[Dict[str, Any]]:
        try:
            return await self.store.select(self.table, order_by="name")
        except SQLAlchemyError as exc:
            raise BackendException(f"Could not load {self.table}: {exc}") from exc

    async def add(self, name: str) -> Dict[str, Any]:
        name = name.strip()
        if not name:
            raise ValidationException("Name is required")
        try:
            return (await self.store.insert(self.table, [{"name": name}]))[0]
        except IntegrityError as exc:
            raise ValidationException(f"'{name}' already exists", code="DUPLICATE_NAME") from exc
        except (SQLAlchemyError, SchemaMismatchError) as exc:
            raise BackendException(f"Could not save {self.table}: {exc}") from exc

    async def remove(self, item_id: int) -> None:
        try:
            deleted = await self.store.delete(self.table, [item_id])
        except SQLAlchemyError as exc:
            raise BackendException(f"Could not delete from {self.table}: {exc}") from exc
        if not deleted:
            raise NotFoundException(f"No {self.table} entry {item_id}")
