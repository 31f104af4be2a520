import datetime as dt
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from models import BookingStatus, TrainingType, UserRole


class AuditLog(BaseModel):
    timestamp: str
    user: str
    action: str
    comment: Optional[str] = None


class BookingBase(BaseModel):
    client_name: str
    assigned_person: str = ""
    kam_name: str = ""
    title: str = ""
    category: str = ""
    type: TrainingType = TrainingType.ONLINE
    package: str = ""
    manpower_submission_date: Optional[dt.date] = None
    date: dt.date
    start_time: str = ""
    duration: float = Field(default=1.0, gt=0)
    location: str = ""
    notes: str = ""
    status: BookingStatus = BookingStatus.TODO


class BookingCreate(BookingBase):
    # Optional when the client name can be matched in ticket_lookup
    id: Optional[str] = None
    ticket_lookup: List[List[str]] = Field(default_factory=list)


class BookingUpdate(BookingBase):
    comment: Optional[str] = None


class BookingQuickEdit(BaseModel):
    status: Optional[BookingStatus] = None
    date: Optional[dt.date] = None
    start_time: Optional[str] = None
    client_name: Optional[str] = None
    comment: Optional[str] = None


class BookingOut(BaseModel):
    id: str
    client_name: str
    assigned_person: Optional[str] = ""
    kam_name: Optional[str] = ""
    title: Optional[str] = ""
    category: Optional[str] = ""
    type: Optional[str] = ""
    package: Optional[str] = ""
    manpower_submission_date: Optional[str] = None
    date: str
    start_time: Optional[str] = ""
    duration: Optional[float] = None
    location: Optional[str] = ""
    notes: Optional[str] = ""
    phone_number: Optional[str] = None
    status: str
    created_at: Optional[str] = ""
    history: List[AuditLog] = Field(default_factory=list)


class BookingPage(BaseModel):
    items: List[BookingOut]
    total: int
    page: int
    page_size: int
    pages: int


class BulkDelete(BaseModel):
    ids: List[str]


class PublicBookingIn(BaseModel):
    company_name: str = ""
    phone_number: str = ""
    date: str
    slot_id: str = ""
    client_name: str = ""


class PublicBookingOut(BaseModel):
    message: str
    id: str
    date: str
    slot_time: str


class SlotOut(BaseModel):
    id: str
    time: str
    date: str
    is_active: bool
    capacity: int
    is_virtual: bool = False
    count: Optional[int] = None
    is_full: Optional[bool] = None
    is_deactivated: Optional[bool] = None


class SlotCreate(BaseModel):
    date: dt.date
    time: str
    capacity: Optional[int] = Field(default=None, ge=1)


class SlotEdit(BaseModel):
    time: Optional[str] = None
    capacity: Optional[int] = Field(default=None, ge=1)


class SlotIn(BaseModel):
    id: str
    time: str
    date: dt.date
    is_active: bool = True
    capacity: int = Field(default=2, ge=1)


class SettingsIn(BaseModel):
    panel_name: Optional[str] = None
    logo: Optional[str] = None
    slot_capacity: Optional[int] = Field(default=None, ge=1)
    tutorials: Optional[List[Dict[str, Any]]] = None


class SettingsOut(BaseModel):
    panel_name: str
    logo: str
    slot_capacity: int
    tutorials: List[Dict[str, Any]]


class UserIn(BaseModel):
    id: str
    name: str
    email: str
    password: Optional[str] = None
    role: UserRole = UserRole.STAFF
    avatar: Optional[str] = None
    permissions: List[str] = Field(default_factory=list)


class UserUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[UserRole] = None
    avatar: Optional[str] = None
    permissions: Optional[List[str]] = None


class UserOut(BaseModel):
    id: str
    name: str
    email: str
    role: str
    avatar: Optional[str] = None
    permissions: List[str] = Field(default_factory=list)


class NamedItemIn(BaseModel):
    name: str = Field(min_length=1)


class NamedItemOut(BaseModel):
    id: int
    name: str
