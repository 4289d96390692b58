"""SQLAlchemy implementation of the shipment store."""
from typing import Any, Optional

from sqlalchemy import select, text, update
from sqlalchemy.exc import IntegrityError

from boxinator.core.logging_config import get_logger
from boxinator.domain.models import Account, Country, Shipment, StatusHistoryEntry
from boxinator.domain.records import (
    AccountRecord,
    AccountType,
    CountryRecord,
    NewShipment,
    ShipmentFilter,
    ShipmentRecord,
    ShipmentStatus,
    StatusEntryRecord,
    utcnow,
)
from boxinator.errors import Conflict, NotFound

from .db import Database

logger = get_logger(__name__)


def _enum_values(data: dict[str, Any]) -> dict[str, Any]:
    return {k: (v.value if isinstance(v, (AccountType, ShipmentStatus)) else v) for k, v in data.items()}


class SqlShipmentStore:
    backend = "sql"

    def __init__(self, database: Database):
        self.database = database

    # Countries

    def find_country(self, country_id: int) -> Optional[CountryRecord]:
        with self.database.session() as db:
            country = db.get(Country, country_id)
            return CountryRecord.model_validate(country) if country else None

    def find_country_by_name(self, name: str) -> Optional[CountryRecord]:
        with self.database.session() as db:
            country = db.scalars(select(Country).where(Country.name == name)).first()
            return CountryRecord.model_validate(country) if country else None

    def list_countries(self, active_only: bool = False) -> list[CountryRecord]:
        stmt = select(Country).order_by(Country.name)
        if active_only:
            stmt = stmt.where(Country.is_active.is_(True))
        with self.database.session() as db:
            return [CountryRecord.model_validate(c) for c in db.scalars(stmt)]

    def create_country(self, data: dict[str, Any]) -> CountryRecord:
        with self.database.session() as db:
            country = Country(**data)
            db.add(country)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                raise Conflict(f"Country already exists: {data.get('name')}")
            db.refresh(country)
            return CountryRecord.model_validate(country)

    def update_country(self, country_id: int, patch: dict[str, Any]) -> CountryRecord:
        with self.database.session() as db:
            country = db.get(Country, country_id)
            if not country:
                raise NotFound("Country not found")
            for key, value in patch.items():
                setattr(country, key, value)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                raise Conflict(f"Country already exists: {patch.get('name')}")
            db.refresh(country)
            return CountryRecord.model_validate(country)

    def delete_country(self, country_id: int) -> bool:
        with self.database.session() as db:
            country = db.get(Country, country_id)
            if not country:
                return False
            db.delete(country)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                raise Conflict("Country is still referenced by shipments")
            return True

    # Accounts

    def find_account(self, account_id: int) -> Optional[AccountRecord]:
        with self.database.session() as db:
            account = db.get(Account, account_id)
            return AccountRecord.model_validate(account) if account else None

    def find_account_by_email(self, email: str) -> Optional[AccountRecord]:
        with self.database.session() as db:
            account = db.scalars(select(Account).where(Account.email == email)).first()
            return AccountRecord.model_validate(account) if account else None

    def list_accounts(self) -> list[AccountRecord]:
        stmt = select(Account).order_by(Account.created_at.desc(), Account.id.desc())
        with self.database.session() as db:
            return [AccountRecord.model_validate(a) for a in db.scalars(stmt)]

    def create_account(self, data: dict[str, Any]) -> AccountRecord:
        with self.database.session() as db:
            account = Account(**_enum_values(data))
            db.add(account)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                raise Conflict(f"Account already exists: {data.get('email')}")
            db.refresh(account)
            return AccountRecord.model_validate(account)

    def update_account(self, account_id: int, patch: dict[str, Any]) -> AccountRecord:
        with self.database.session() as db:
            account = db.get(Account, account_id)
            if not account:
                raise NotFound("Account not found")
            for key, value in _enum_values(patch).items():
                setattr(account, key, value)
            db.commit()
            db.refresh(account)
            return AccountRecord.model_validate(account)

    def claim_guest_account(self, account_id: int, patch: dict[str, Any]) -> Optional[AccountRecord]:
        # Single conditional UPDATE; the account type is the concurrency token
        stmt = (
            update(Account)
            .where(Account.id == account_id, Account.account_type == AccountType.GUEST.value)
            .values(**_enum_values(patch))
            .execution_options(synchronize_session=False)
        )
        with self.database.session() as db:
            result = db.execute(stmt)
            db.commit()
            if result.rowcount == 0:
                return None
            account = db.get(Account, account_id)
            return AccountRecord.model_validate(account)

    def delete_account(self, account_id: int) -> bool:
        with self.database.session() as db:
            account = db.get(Account, account_id)
            if not account:
                return False
            db.delete(account)
            db.commit()
            return True

    # Shipments

    def create_shipment(self, data: NewShipment, note: Optional[str] = None) -> ShipmentRecord:
        with self.database.session() as db:
            shipment = Shipment(**data.model_dump(), created_at=utcnow())
            db.add(shipment)
            db.flush()  # assign id
            db.add(StatusHistoryEntry(
                shipment_id=shipment.id,
                status=ShipmentStatus.CREATED.value,
                note=note,
                created_at=shipment.created_at,
            ))
            try:
                db.commit()
            except Exception:
                db.rollback()
                raise
            db.refresh(shipment)
            return ShipmentRecord.model_validate(shipment)

    def find_shipment(self, shipment_id: int) -> Optional[ShipmentRecord]:
        with self.database.session() as db:
            shipment = db.get(Shipment, shipment_id)
            return ShipmentRecord.model_validate(shipment) if shipment else None

    def list_shipments(self, filter: ShipmentFilter) -> list[ShipmentRecord]:
        stmt = select(Shipment).order_by(Shipment.created_at.desc(), Shipment.id.desc())
        if filter.account_id is not None:
            stmt = stmt.where(Shipment.account_id == filter.account_id)
        if filter.country_id is not None:
            stmt = stmt.where(Shipment.country_id == filter.country_id)
        if filter.created_from is not None:
            stmt = stmt.where(Shipment.created_at >= filter.created_from)
        if filter.created_to is not None:
            stmt = stmt.where(Shipment.created_at <= filter.created_to)
        with self.database.session() as db:
            return [ShipmentRecord.model_validate(s) for s in db.scalars(stmt)]

    def delete_shipment(self, shipment_id: int) -> bool:
        with self.database.session() as db:
            shipment = db.get(Shipment, shipment_id)
            if not shipment:
                return False
            # cascade removes the status history in the same transaction
            db.delete(shipment)
            db.commit()
            return True

    # Status history

    def append_status_entry(
        self, shipment_id: int, status: ShipmentStatus, note: Optional[str] = None
    ) -> StatusEntryRecord:
        with self.database.session() as db:
            if db.get(Shipment, shipment_id) is None:
                raise NotFound("Shipment not found")
            entry = StatusHistoryEntry(
                shipment_id=shipment_id,
                status=ShipmentStatus(status).value,
                note=note,
                created_at=utcnow(),
            )
            db.add(entry)
            db.commit()
            db.refresh(entry)
            return StatusEntryRecord.model_validate(entry)

    def list_status_entries(self, shipment_id: int) -> list[StatusEntryRecord]:
        stmt = (
            select(StatusHistoryEntry)
            .where(StatusHistoryEntry.shipment_id == shipment_id)
            .order_by(StatusHistoryEntry.created_at.desc(), StatusHistoryEntry.id.desc())
        )
        with self.database.session() as db:
            return [StatusEntryRecord.model_validate(e) for e in db.scalars(stmt)]

    def ping(self) -> bool:
        try:
            with self.database.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database ping failed: {e}")
            return False

    def close(self) -> None:
        self.database.dispose()
