from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from boxinator.domain.records import AccountType, ShipmentStatus


class CountryCreate(BaseModel):
    name: str
    code: str
    multiplier: float
    is_active: bool = True


class CountryUpdate(BaseModel):
    name: Optional[str] = None
    code: Optional[str] = None
    multiplier: Optional[float] = None
    is_active: Optional[bool] = None


class CountryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    code: Optional[str] = None
    multiplier: float
    is_active: bool


class AccountRead(BaseModel):
    """Public account representation; never carries the password hash."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    account_type: AccountType
    is_email_verified: bool
    two_factor_enabled: bool
    created_at: datetime


class AccountCreate(BaseModel):
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    account_type: AccountType = AccountType.REGISTERED_USER
    password: Optional[str] = None


class AccountUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    password: Optional[str] = None


class RegisterRequest(BaseModel):
    email: str
    password: str
    first_name: str
    last_name: str


class LoginRequest(BaseModel):
    email: str
    password: str
    two_factor_code: Optional[str] = None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    account: AccountRead


class TwoFactorSetup(BaseModel):
    secret: str
    manual_entry_key: str
    provisioning_uri: str
    qr_code: str


class TwoFactorVerify(BaseModel):
    token: str


class MessageResponse(BaseModel):
    message: str


class StatusEntryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    status: ShipmentStatus
    note: Optional[str] = None
    created_at: datetime


class ShipmentCreate(BaseModel):
    receiver_name: str
    weight: float
    box_color: str
    country_id: int
    guest_email: Optional[str] = None


class StatusUpdate(BaseModel):
    status: str
    note: Optional[str] = None


class ShipmentRead(BaseModel):
    id: int
    account_id: int
    owner_email: Optional[str] = None
    owner_account_type: Optional[AccountType] = None
    receiver_name: str
    weight: float
    tier: str
    box_color: str
    country_id: int
    destination_country: Optional[CountryRead] = None
    total_cost: float
    status: ShipmentStatus
    status_history: list[StatusEntryRead] = []
    created_at: datetime


class ClaimPreview(BaseModel):
    id: int
    receiver_name: str
    weight: float
    tier: str
    box_color: str
    total_cost: float
    status: ShipmentStatus
    created_at: datetime
    destination_country: Optional[CountryRead] = None
    guest_email: str


class ClaimRequest(BaseModel):
    first_name: str
    last_name: str
    password: str


class CountryRevenue(BaseModel):
    country_id: int
    country: Optional[CountryRead] = None
    shipment_count: int
    revenue: float


class RevenueSummary(BaseModel):
    """Admin statistics over the shipments created in the optional date range."""

    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    shipment_count: int
    total_revenue: float
    by_status: dict[str, int]
    by_country: list[CountryRevenue] = []
    accounts_by_type: dict[str, int] = {}
