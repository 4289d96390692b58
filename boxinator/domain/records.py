"""Plain records exchanged between the core and the persistence stores.

All three store implementations (SQL, REST, memory) return these records so
the lifecycle code never sees ORM rows or raw JSON.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every store persists."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class AccountType(str, Enum):
    GUEST = "GUEST"
    REGISTERED_USER = "REGISTERED_USER"
    ADMINISTRATOR = "ADMINISTRATOR"


class ShipmentStatus(str, Enum):
    CREATED = "CREATED"
    RECEIVED = "RECEIVED"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


# Hidden from the default admin shipment list
TERMINAL_STATUSES = frozenset({ShipmentStatus.DELIVERED, ShipmentStatus.CANCELLED})


class CountryRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    code: Optional[str] = None
    multiplier: float
    is_active: bool = True


class AccountRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    password_hash: Optional[str] = None
    account_type: AccountType = AccountType.GUEST
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_email_verified: bool = False
    two_factor_secret: Optional[str] = None
    two_factor_enabled: bool = False
    created_at: datetime

    @property
    def is_admin(self) -> bool:
        return self.account_type == AccountType.ADMINISTRATOR

    @property
    def is_guest(self) -> bool:
        return self.account_type == AccountType.GUEST


class ShipmentRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    account_id: int
    receiver_name: str
    # Stored as a general number; the API only accepts the tier weights
    weight: float
    box_color: str
    country_id: int
    total_cost: float
    created_at: datetime


class StatusEntryRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    shipment_id: int
    status: ShipmentStatus
    note: Optional[str] = None
    created_at: datetime


class NewShipment(BaseModel):
    account_id: int
    receiver_name: str
    weight: float
    box_color: str
    country_id: int
    total_cost: float


class ShipmentFilter(BaseModel):
    """Store-level filter; status filtering happens after fetch."""

    account_id: Optional[int] = None
    country_id: Optional[int] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None


def latest_entry(entries: list[StatusEntryRecord]) -> Optional[StatusEntryRecord]:
    """Most recent entry; equal timestamps are broken by the monotonic id."""
    if not entries:
        return None
    return max(entries, key=lambda e: (e.created_at, e.id))


def newest_first(entries: list[StatusEntryRecord]) -> list[StatusEntryRecord]:
    return sorted(entries, key=lambda e: (e.created_at, e.id), reverse=True)
