"""In-memory store for tests and local development.

A single re-entrant lock makes every method atomic, which gives the same
uniqueness and conditional-update guarantees the SQL store gets from the
database.
"""
import itertools
import threading
from typing import Any, Optional

from boxinator.domain.records import (
    AccountRecord,
    AccountType,
    CountryRecord,
    NewShipment,
    ShipmentFilter,
    ShipmentRecord,
    ShipmentStatus,
    StatusEntryRecord,
    newest_first,
    utcnow,
)
from boxinator.errors import Conflict, NotFound


class MemoryShipmentStore:
    backend = "memory"

    def __init__(self):
        self._lock = threading.RLock()
        self._countries: dict[int, CountryRecord] = {}
        self._accounts: dict[int, AccountRecord] = {}
        self._shipments: dict[int, ShipmentRecord] = {}
        self._entries: dict[int, StatusEntryRecord] = {}
        self._country_ids = itertools.count(1)
        self._account_ids = itertools.count(1)
        self._shipment_ids = itertools.count(1)
        self._entry_ids = itertools.count(1)

    # Countries

    def find_country(self, country_id: int) -> Optional[CountryRecord]:
        with self._lock:
            country = self._countries.get(country_id)
            return country.model_copy() if country else None

    def find_country_by_name(self, name: str) -> Optional[CountryRecord]:
        with self._lock:
            for country in self._countries.values():
                if country.name == name:
                    return country.model_copy()
            return None

    def list_countries(self, active_only: bool = False) -> list[CountryRecord]:
        with self._lock:
            countries = [c.model_copy() for c in self._countries.values() if c.is_active or not active_only]
        return sorted(countries, key=lambda c: c.name)

    def create_country(self, data: dict[str, Any]) -> CountryRecord:
        with self._lock:
            if any(c.name == data.get("name") for c in self._countries.values()):
                raise Conflict(f"Country already exists: {data.get('name')}")
            country = CountryRecord(id=next(self._country_ids), **data)
            self._countries[country.id] = country
            return country.model_copy()

    def update_country(self, country_id: int, patch: dict[str, Any]) -> CountryRecord:
        with self._lock:
            country = self._countries.get(country_id)
            if country is None:
                raise NotFound("Country not found")
            name = patch.get("name")
            if name and any(c.name == name and c.id != country_id for c in self._countries.values()):
                raise Conflict(f"Country already exists: {name}")
            updated = country.model_copy(update=patch)
            self._countries[country_id] = updated
            return updated.model_copy()

    def delete_country(self, country_id: int) -> bool:
        with self._lock:
            if country_id not in self._countries:
                return False
            if any(s.country_id == country_id for s in self._shipments.values()):
                raise Conflict("Country is still referenced by shipments")
            del self._countries[country_id]
            return True

    # Accounts

    def find_account(self, account_id: int) -> Optional[AccountRecord]:
        with self._lock:
            account = self._accounts.get(account_id)
            return account.model_copy() if account else None

    def find_account_by_email(self, email: str) -> Optional[AccountRecord]:
        with self._lock:
            for account in self._accounts.values():
                if account.email == email:
                    return account.model_copy()
            return None

    def list_accounts(self) -> list[AccountRecord]:
        with self._lock:
            accounts = [a.model_copy() for a in self._accounts.values()]
        return sorted(accounts, key=lambda a: (a.created_at, a.id), reverse=True)

    def create_account(self, data: dict[str, Any]) -> AccountRecord:
        with self._lock:
            if any(a.email == data.get("email") for a in self._accounts.values()):
                raise Conflict(f"Account already exists: {data.get('email')}")
            fields = {"created_at": utcnow(), **data}
            account = AccountRecord(id=next(self._account_ids), **fields)
            self._accounts[account.id] = account
            return account.model_copy()

    def update_account(self, account_id: int, patch: dict[str, Any]) -> AccountRecord:
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                raise NotFound("Account not found")
            updated = AccountRecord.model_validate({**account.model_dump(), **patch})
            self._accounts[account_id] = updated
            return updated.model_copy()

    def claim_guest_account(self, account_id: int, patch: dict[str, Any]) -> Optional[AccountRecord]:
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None or account.account_type != AccountType.GUEST:
                return None
            return self.update_account(account_id, patch)

    def delete_account(self, account_id: int) -> bool:
        with self._lock:
            if self._accounts.pop(account_id, None) is None:
                return False
            owned = [s.id for s in self._shipments.values() if s.account_id == account_id]
            for shipment_id in owned:
                self.delete_shipment(shipment_id)
            return True

    # Shipments

    def create_shipment(self, data: NewShipment, note: Optional[str] = None) -> ShipmentRecord:
        with self._lock:
            now = utcnow()
            shipment = ShipmentRecord(id=next(self._shipment_ids), created_at=now, **data.model_dump())
            entry = StatusEntryRecord(
                id=next(self._entry_ids),
                shipment_id=shipment.id,
                status=ShipmentStatus.CREATED,
                note=note,
                created_at=now,
            )
            self._shipments[shipment.id] = shipment
            self._entries[entry.id] = entry
            return shipment.model_copy()

    def find_shipment(self, shipment_id: int) -> Optional[ShipmentRecord]:
        with self._lock:
            shipment = self._shipments.get(shipment_id)
            return shipment.model_copy() if shipment else None

    def list_shipments(self, filter: ShipmentFilter) -> list[ShipmentRecord]:
        with self._lock:
            shipments = [s.model_copy() for s in self._shipments.values()]
        if filter.account_id is not None:
            shipments = [s for s in shipments if s.account_id == filter.account_id]
        if filter.country_id is not None:
            shipments = [s for s in shipments if s.country_id == filter.country_id]
        if filter.created_from is not None:
            shipments = [s for s in shipments if s.created_at >= filter.created_from]
        if filter.created_to is not None:
            shipments = [s for s in shipments if s.created_at <= filter.created_to]
        return sorted(shipments, key=lambda s: (s.created_at, s.id), reverse=True)

    def delete_shipment(self, shipment_id: int) -> bool:
        with self._lock:
            if self._shipments.pop(shipment_id, None) is None:
                return False
            for entry_id in [e.id for e in self._entries.values() if e.shipment_id == shipment_id]:
                del self._entries[entry_id]
            return True

    # Status history

    def append_status_entry(
        self, shipment_id: int, status: ShipmentStatus, note: Optional[str] = None
    ) -> StatusEntryRecord:
        with self._lock:
            if shipment_id not in self._shipments:
                raise NotFound("Shipment not found")
            entry = StatusEntryRecord(
                id=next(self._entry_ids),
                shipment_id=shipment_id,
                status=ShipmentStatus(status),
                note=note,
                created_at=utcnow(),
            )
            self._entries[entry.id] = entry
            return entry.model_copy()

    def list_status_entries(self, shipment_id: int) -> list[StatusEntryRecord]:
        with self._lock:
            entries = [e.model_copy() for e in self._entries.values() if e.shipment_id == shipment_id]
        return newest_first(entries)

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        pass
