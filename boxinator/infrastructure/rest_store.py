"""Document-style REST store speaking the PostgREST dialect (e.g. Supabase).

Tables mirror the SQL schema: ``countries``, ``accounts``, ``shipments`` and
``status_history``. The API gives no multi-table transactions, so shipment
creation compensates by deleting the shipment when its initial status entry
cannot be written.
"""
from datetime import datetime
from typing import Any, Optional

import httpx

from boxinator.core.logging_config import get_logger
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

logger = get_logger(__name__)

RETURN_REPRESENTATION = {"Prefer": "return=representation"}


def _jsonable(data: dict[str, Any]) -> dict[str, Any]:
    out = {}
    for key, value in data.items():
        if isinstance(value, (AccountType, ShipmentStatus)):
            value = value.value
        elif isinstance(value, datetime):
            value = value.isoformat()
        out[key] = value
    return out


class RestShipmentStore:
    backend = "rest"

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"
        self.client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    # HTTP helpers

    def _check(self, resp: httpx.Response, table: str) -> httpx.Response:
        if resp.status_code == 409:
            raise Conflict(f"Conflicting write on {table}: {resp.text}")
        resp.raise_for_status()
        return resp

    def _select(self, table: str, params: dict[str, str]) -> list[dict]:
        resp = self.client.get(f"/{table}", params={"select": "*", **params})
        return self._check(resp, table).json()

    def _insert(self, table: str, row: dict[str, Any]) -> dict:
        resp = self.client.post(f"/{table}", json=_jsonable(row), headers=RETURN_REPRESENTATION)
        rows = self._check(resp, table).json()
        return rows[0]

    def _patch(self, table: str, params: dict[str, str], patch: dict[str, Any]) -> list[dict]:
        resp = self.client.patch(f"/{table}", params=params, json=_jsonable(patch), headers=RETURN_REPRESENTATION)
        return self._check(resp, table).json()

    def _delete(self, table: str, params: dict[str, str]) -> list[dict]:
        resp = self.client.delete(f"/{table}", params=params, headers=RETURN_REPRESENTATION)
        return self._check(resp, table).json()

    def _first(self, table: str, params: dict[str, str]) -> Optional[dict]:
        rows = self._select(table, {**params, "limit": "1"})
        return rows[0] if rows else None

    # Countries

    def find_country(self, country_id: int) -> Optional[CountryRecord]:
        row = self._first("countries", {"id": f"eq.{country_id}"})
        return CountryRecord.model_validate(row) if row else None

    def find_country_by_name(self, name: str) -> Optional[CountryRecord]:
        row = self._first("countries", {"name": f"eq.{name}"})
        return CountryRecord.model_validate(row) if row else None

    def list_countries(self, active_only: bool = False) -> list[CountryRecord]:
        params = {"order": "name.asc"}
        if active_only:
            params["is_active"] = "eq.true"
        return [CountryRecord.model_validate(r) for r in self._select("countries", params)]

    def create_country(self, data: dict[str, Any]) -> CountryRecord:
        return CountryRecord.model_validate(self._insert("countries", data))

    def update_country(self, country_id: int, patch: dict[str, Any]) -> CountryRecord:
        rows = self._patch("countries", {"id": f"eq.{country_id}"}, patch)
        if not rows:
            raise NotFound("Country not found")
        return CountryRecord.model_validate(rows[0])

    def delete_country(self, country_id: int) -> bool:
        return bool(self._delete("countries", {"id": f"eq.{country_id}"}))

    # Accounts

    def find_account(self, account_id: int) -> Optional[AccountRecord]:
        row = self._first("accounts", {"id": f"eq.{account_id}"})
        return AccountRecord.model_validate(row) if row else None

    def find_account_by_email(self, email: str) -> Optional[AccountRecord]:
        row = self._first("accounts", {"email": f"eq.{email}"})
        return AccountRecord.model_validate(row) if row else None

    def list_accounts(self) -> list[AccountRecord]:
        rows = self._select("accounts", {"order": "created_at.desc,id.desc"})
        return [AccountRecord.model_validate(r) for r in rows]

    def create_account(self, data: dict[str, Any]) -> AccountRecord:
        row = self._insert("accounts", {"created_at": utcnow(), **data})
        return AccountRecord.model_validate(row)

    def update_account(self, account_id: int, patch: dict[str, Any]) -> AccountRecord:
        rows = self._patch("accounts", {"id": f"eq.{account_id}"}, patch)
        if not rows:
            raise NotFound("Account not found")
        return AccountRecord.model_validate(rows[0])

    def claim_guest_account(self, account_id: int, patch: dict[str, Any]) -> Optional[AccountRecord]:
        params = {"id": f"eq.{account_id}", "account_type": f"eq.{AccountType.GUEST.value}"}
        rows = self._patch("accounts", params, patch)
        return AccountRecord.model_validate(rows[0]) if rows else None

    def delete_account(self, account_id: int) -> bool:
        owned = self.list_shipments(ShipmentFilter(account_id=account_id))
        for shipment in owned:
            self.delete_shipment(shipment.id)
        return bool(self._delete("accounts", {"id": f"eq.{account_id}"}))

    # Shipments

    def create_shipment(self, data: NewShipment, note: Optional[str] = None) -> ShipmentRecord:
        now = utcnow()
        shipment = ShipmentRecord.model_validate(
            self._insert("shipments", {**data.model_dump(), "created_at": now})
        )
        try:
            self._insert("status_history", {
                "shipment_id": shipment.id,
                "status": ShipmentStatus.CREATED,
                "note": note,
                "created_at": now,
            })
        except Exception:
            logger.error(
                "Initial status write failed, removing shipment",
                exc_info=True,
                extra={'extra_fields': {'shipment_id': shipment.id}},
            )
            self._delete("shipments", {"id": f"eq.{shipment.id}"})
            raise
        return shipment

    def find_shipment(self, shipment_id: int) -> Optional[ShipmentRecord]:
        row = self._first("shipments", {"id": f"eq.{shipment_id}"})
        return ShipmentRecord.model_validate(row) if row else None

    def list_shipments(self, filter: ShipmentFilter) -> list[ShipmentRecord]:
        params: list[tuple[str, str]] = [("select", "*"), ("order", "created_at.desc,id.desc")]
        if filter.account_id is not None:
            params.append(("account_id", f"eq.{filter.account_id}"))
        if filter.country_id is not None:
            params.append(("country_id", f"eq.{filter.country_id}"))
        if filter.created_from is not None:
            params.append(("created_at", f"gte.{filter.created_from.isoformat()}"))
        if filter.created_to is not None:
            params.append(("created_at", f"lte.{filter.created_to.isoformat()}"))
        resp = self.client.get("/shipments", params=params)
        return [ShipmentRecord.model_validate(r) for r in self._check(resp, "shipments").json()]

    def delete_shipment(self, shipment_id: int) -> bool:
        self._delete("status_history", {"shipment_id": f"eq.{shipment_id}"})
        return bool(self._delete("shipments", {"id": f"eq.{shipment_id}"}))

    # Status history

    def append_status_entry(
        self, shipment_id: int, status: ShipmentStatus, note: Optional[str] = None
    ) -> StatusEntryRecord:
        if self.find_shipment(shipment_id) is None:
            raise NotFound("Shipment not found")
        row = self._insert("status_history", {
            "shipment_id": shipment_id,
            "status": ShipmentStatus(status),
            "note": note,
            "created_at": utcnow(),
        })
        return StatusEntryRecord.model_validate(row)

    def list_status_entries(self, shipment_id: int) -> list[StatusEntryRecord]:
        rows = self._select("status_history", {
            "shipment_id": f"eq.{shipment_id}",
            "order": "created_at.desc,id.desc",
        })
        return [StatusEntryRecord.model_validate(r) for r in rows]

    def ping(self) -> bool:
        try:
            self._select("countries", {"select": "id", "limit": "1"})
            return True
        except (httpx.HTTPError, Conflict) as e:
            logger.error(f"REST store ping failed: {e}")
            return False

    def close(self) -> None:
        self.client.close()
