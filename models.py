from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


class BookingStatus(str, Enum):
    TODO = "To Do"
    DONE = "Done"
    CANCELLED = "Cancelled"
    REQUESTED = "Requested"
    APPROVED = "Approved"
    COMPLETED = "Completed"
    PENDING = "Pending"


class TrainingType(str, Enum):
    ONLINE = "Online"
    ON_SITE = "On-site"
    HYBRID = "Hybrid"


class UserRole(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    KAM = "KAM"
    TRAINER = "TRAINER"
    CLIENT = "CLIENT"
    STAFF = "STAFF"


PUBLIC_REQUEST_CATEGORY = "Public Request"

# Status and enum columns are plain strings so rows written by older clients
# with unexpected values can still be read back.


class Booking(SQLModel, table=True):
    __tablename__ = "bookings"

    id: str = Field(primary_key=True)  # ticket id
    client_name: str = Field(index=True)
    assigned_person: str = ""
    kam_name: str = ""
    title: str = ""
    category: str = Field(default="", index=True)
    type: str = TrainingType.ONLINE.value
    package: str = ""
    manpower_submission_date: Optional[str] = None
    date: str = Field(index=True)  # YYYY-MM-DD
    start_time: str = ""
    duration: float = 1.0  # hours
    location: str = ""
    notes: str = ""
    phone_number: Optional[str] = None
    status: str = Field(default=BookingStatus.TODO.value, index=True)
    created_at: str = ""
    history: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))


class TrainingSlot(SQLModel, table=True):
    __tablename__ = "training_slots"

    id: str = Field(primary_key=True)
    time: str  # display form, e.g. "10:00 AM"
    is_active: bool = True
    capacity: int = 2
    date: str = Field(index=True)


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: str = Field(primary_key=True)
    name: str
    email: str = Field(index=True)
    password: Optional[str] = None
    role: str = UserRole.STAFF.value
    avatar: Optional[str] = None
    permissions: List[str] = Field(default_factory=list, sa_column=Column(JSON))


class Kam(SQLModel, table=True):
    __tablename__ = "kams"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(unique=True)


class Package(SQLModel, table=True):
    __tablename__ = "packages"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(unique=True)


class SystemSettings(SQLModel, table=True):
    __tablename__ = "settings"

    # Singleton: exactly one row, addressed by config.settings.settings_row_id
    id: int = Field(primary_key=True)
    panel_name: str = "Tipsoi CST"
    logo: str = ""
    slot_capacity: int = 2
    tutorials: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
