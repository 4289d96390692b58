"""Persistence interface shared by the SQL, REST and in-memory stores.

The backend is chosen once at startup from ``STORAGE_BACKEND``; there is no
runtime fallback from one store to another. An unreachable store fails the
startup instead of silently degrading.
"""
from typing import Any, Optional, Protocol

from boxinator.core.logging_config import get_logger
from boxinator.core_settings import Settings
from boxinator.domain.records import (
    AccountRecord,
    CountryRecord,
    NewShipment,
    ShipmentFilter,
    ShipmentRecord,
    ShipmentStatus,
    StatusEntryRecord,
)

logger = get_logger(__name__)


class ShipmentStore(Protocol):
    backend: str

    # Countries
    def find_country(self, country_id: int) -> Optional[CountryRecord]: ...
    def find_country_by_name(self, name: str) -> Optional[CountryRecord]: ...
    def list_countries(self, active_only: bool = False) -> list[CountryRecord]: ...
    def create_country(self, data: dict[str, Any]) -> CountryRecord: ...
    def update_country(self, country_id: int, patch: dict[str, Any]) -> CountryRecord: ...
    def delete_country(self, country_id: int) -> bool:
        """Remove a country; raises Conflict while shipments still reference it."""
        ...

    # Accounts
    def find_account(self, account_id: int) -> Optional[AccountRecord]: ...
    def find_account_by_email(self, email: str) -> Optional[AccountRecord]: ...
    def list_accounts(self) -> list[AccountRecord]: ...
    def create_account(self, data: dict[str, Any]) -> AccountRecord:
        """Insert an account; raises Conflict when the e-mail is taken."""
        ...
    def update_account(self, account_id: int, patch: dict[str, Any]) -> AccountRecord: ...
    def claim_guest_account(self, account_id: int, patch: dict[str, Any]) -> Optional[AccountRecord]:
        """Apply ``patch`` only while the account is still a GUEST.

        Returns None when the conditional update matched nothing.
        """
        ...
    def delete_account(self, account_id: int) -> bool: ...

    # Shipments
    def create_shipment(self, data: NewShipment, note: Optional[str] = None) -> ShipmentRecord:
        """Persist the shipment together with its initial CREATED entry."""
        ...
    def find_shipment(self, shipment_id: int) -> Optional[ShipmentRecord]: ...
    def list_shipments(self, filter: ShipmentFilter) -> list[ShipmentRecord]: ...
    def delete_shipment(self, shipment_id: int) -> bool:
        """Remove the shipment and its whole status history."""
        ...

    # Status history
    def append_status_entry(
        self, shipment_id: int, status: ShipmentStatus, note: Optional[str] = None
    ) -> StatusEntryRecord: ...
    def list_status_entries(self, shipment_id: int) -> list[StatusEntryRecord]: ...

    def ping(self) -> bool: ...
    def close(self) -> None: ...


def build_store(settings: Settings) -> ShipmentStore:
    """Construct the configured store."""
    backend = settings.STORAGE_BACKEND.lower()
    logger.info(f"Initializing {backend} store")

    if backend == "sql":
        from .db import Database
        from .sql_store import SqlShipmentStore

        database = Database(settings.database_url, echo=settings.SQL_ECHO)
        database.init_models()
        return SqlShipmentStore(database)
    if backend == "rest":
        from .rest_store import RestShipmentStore

        if not settings.REST_API_URL:
            raise RuntimeError("REST_API_URL must be set when STORAGE_BACKEND=rest")
        store = RestShipmentStore(
            settings.REST_API_URL,
            api_key=settings.REST_API_KEY,
            timeout=settings.REST_TIMEOUT,
        )
        if not store.ping():
            store.close()
            raise RuntimeError(f"REST store at {settings.REST_API_URL} is unreachable")
        return store
    if backend == "memory":
        from .memory_store import MemoryShipmentStore

        if settings.ENVIRONMENT == "production":
            logger.warning("In-memory store selected in production; data will not survive restarts")
        return MemoryShipmentStore()
    raise ValueError(f"Unknown STORAGE_BACKEND: {settings.STORAGE_BACKEND}")
