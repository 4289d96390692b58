"""Shipment lifecycle: creation, listing, status changes, deletion, claiming."""
from datetime import datetime, timezone
from typing import Optional, Protocol

from boxinator.auth_local import hash_password
from boxinator.core.logging_config import get_logger
from boxinator.domain import pricing
from boxinator.domain.records import (
    AccountRecord,
    AccountType,
    NewShipment,
    ShipmentFilter,
    ShipmentRecord,
    ShipmentStatus,
    TERMINAL_STATUSES,
    latest_entry,
    newest_first,
)
from boxinator.domain.validators import (
    is_valid_email,
    is_valid_rgba,
    normalize_email,
    require_password,
    require_text,
)
from boxinator.errors import (
    AlreadyClaimed,
    Conflict,
    Forbidden,
    InvalidCountry,
    NotClaimable,
    NotFound,
    Unauthenticated,
    ValidationFailed,
)
from boxinator.infrastructure.store import ShipmentStore

from .ledger import StatusLedger, parse_status
from .schemas import (
    AccountRead,
    ClaimPreview,
    CountryRead,
    CountryRevenue,
    RevenueSummary,
    ShipmentRead,
    StatusEntryRead,
)

logger = get_logger(__name__)

ACTIVE_VIEW = "active"
COMPLETE_VIEW = "complete"
CANCELLED_VIEW = "cancelled"


class ReceiptNotifier(Protocol):
    def send_receipt(self, email: str, shipment: ShipmentRead, is_guest: bool = False) -> None: ...


def _as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class ShipmentService:
    def __init__(self, store: ShipmentStore, notifier: Optional[ReceiptNotifier] = None):
        self.store = store
        self.notifier = notifier
        self.ledger = StatusLedger(store)

    # Creation

    def create_shipment(
        self,
        receiver_name: str,
        weight_kg,
        box_color: str,
        country_id: int,
        requester: Optional[AccountRecord] = None,
        guest_email: Optional[str] = None,
    ) -> ShipmentRead:
        receiver_name = require_text(receiver_name, "Receiver name is required")
        if not pricing.is_valid_weight(weight_kg):
            raise ValidationFailed("Weight must be 1, 2, 5, or 8 kg")
        if not is_valid_rgba(box_color):
            raise ValidationFailed("Invalid RGBA color format")

        if requester is None:
            if not guest_email:
                raise Unauthenticated("Authentication required or guest email must be provided")
            if not is_valid_email(guest_email):
                raise ValidationFailed("Invalid guest email")

        country = self.store.find_country(country_id)
        if country is None or not country.is_active:
            logger.warning(
                "Country lookup failed",
                extra={'extra_fields': {
                    'country_id': country_id,
                    'country_found': country is not None,
                }},
            )
            raise InvalidCountry()

        owner = requester if requester is not None else self.find_or_create_guest(guest_email)
        total_cost = pricing.compute_cost(weight_kg, country.multiplier)

        record = self.store.create_shipment(
            NewShipment(
                account_id=owner.id,
                receiver_name=receiver_name,
                weight=weight_kg,
                box_color=box_color.strip(),
                country_id=country.id,
                total_cost=total_cost,
            ),
            note="Shipment created",
        )
        logger.info(
            f"Shipment created: {record.id}",
            extra={'extra_fields': {
                'shipment_id': record.id,
                'account_id': owner.id,
                'country': country.name,
                'weight': weight_kg,
                'total_cost': total_cost,
            }},
        )

        shipment = self._to_read(record, owner=owner)
        self._send_receipt(owner, shipment)
        return shipment

    def find_or_create_guest(self, email: str) -> AccountRecord:
        """Return the account for ``email``, creating a GUEST if none exists.

        Two concurrent calls for a new address converge: the loser of the
        insert race gets Conflict from the unique constraint and re-reads.
        """
        email = normalize_email(email)
        account = self.store.find_account_by_email(email)
        if account is not None:
            return account
        try:
            account = self.store.create_account({
                "email": email,
                "account_type": AccountType.GUEST,
                "is_email_verified": True,
            })
            logger.info(f"Guest account created: {account.id}")
            return account
        except Conflict:
            account = self.store.find_account_by_email(email)
            if account is None:
                raise Conflict("Failed to create or find guest account")
            return account

    def _send_receipt(self, owner: AccountRecord, shipment: ShipmentRead) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.send_receipt(owner.email, shipment, owner.is_guest)
        except Exception:
            # a failed receipt never fails the booking
            logger.warning(
                "Failed to send receipt email",
                exc_info=True,
                extra={'extra_fields': {'shipment_id': shipment.id}},
            )

    # Queries

    def get_shipment(self, shipment_id: int, requester: AccountRecord) -> ShipmentRead:
        record = self._require_shipment(shipment_id)
        self._require_access(record, requester)
        return self._to_read(record)

    def list_shipments(
        self,
        requester: AccountRecord,
        status: Optional[str] = None,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
        view: str = ACTIVE_VIEW,
    ) -> list[ShipmentRead]:
        """Shipments visible to ``requester``.

        Non-admins only see their own. In the active view an admin does not
        see shipments whose current status is DELIVERED or CANCELLED unless
        ``status`` asks for one; the complete and cancelled views serve them too.
        """
        wanted = parse_status(status) if status else None
        store_filter = ShipmentFilter(
            account_id=None if requester.is_admin else requester.id,
            created_from=_as_naive_utc(created_from),
            created_to=_as_naive_utc(created_to),
        )
        shipments = [self._to_read(r) for r in self.store.list_shipments(store_filter)]

        if view == COMPLETE_VIEW:
            shipments = [s for s in shipments if s.status == ShipmentStatus.DELIVERED]
        elif view == CANCELLED_VIEW:
            shipments = [s for s in shipments if s.status == ShipmentStatus.CANCELLED]
        elif requester.is_admin and wanted is None:
            shipments = [s for s in shipments if s.status not in TERMINAL_STATUSES]

        if wanted is not None:
            shipments = [s for s in shipments if s.status == wanted]
        return shipments

    def list_for_account(self, account_id: int, requester: AccountRecord) -> list[ShipmentRead]:
        self._require_admin(requester)
        records = self.store.list_shipments(ShipmentFilter(account_id=account_id))
        return [self._to_read(r) for r in records]

    def revenue_summary(
        self,
        requester: AccountRecord,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
    ) -> RevenueSummary:
        """Counts and revenue for shipments created in the range, plus account counts.

        Revenue sums the stored ``total_cost`` whatever the current status, so
        cancelled shipments still count. Countries are ordered by revenue.
        """
        self._require_admin(requester)
        store_filter = ShipmentFilter(
            created_from=_as_naive_utc(created_from),
            created_to=_as_naive_utc(created_to),
        )
        shipments = [self._to_read(r) for r in self.store.list_shipments(store_filter)]

        by_status = {s.value: 0 for s in ShipmentStatus}
        per_country: dict[int, list[ShipmentRead]] = {}
        for shipment in shipments:
            by_status[shipment.status.value] += 1
            per_country.setdefault(shipment.country_id, []).append(shipment)

        by_country = [
            CountryRevenue(
                country_id=country_id,
                country=group[0].destination_country,
                shipment_count=len(group),
                revenue=pricing.total_cost(group),
            )
            for country_id, group in per_country.items()
        ]
        by_country.sort(key=lambda row: (-row.revenue, row.country_id))

        accounts_by_type = {t.value: 0 for t in AccountType}
        for account in self.store.list_accounts():
            accounts_by_type[account.account_type.value] += 1

        return RevenueSummary(
            created_from=created_from,
            created_to=created_to,
            shipment_count=len(shipments),
            total_revenue=pricing.total_cost(shipments),
            by_status=by_status,
            by_country=by_country,
            accounts_by_type=accounts_by_type,
        )

    # Status changes

    def update_status(
        self,
        shipment_id: int,
        new_status,
        note: Optional[str],
        requester: AccountRecord,
    ) -> ShipmentRead:
        record = self._require_shipment(shipment_id)
        self._require_access(record, requester)
        status = parse_status(new_status)
        # customers may cancel but never advance a shipment
        if not requester.is_admin and status != ShipmentStatus.CANCELLED:
            raise Forbidden("Only administrators can change shipment status")

        self.ledger.append_status(shipment_id, status, note or f"Status changed to {status.value}")
        return self._to_read(record)

    def delete_shipment(self, shipment_id: int, requester: Optional[AccountRecord]) -> None:
        self._require_admin(requester)
        if not self.store.delete_shipment(shipment_id):
            raise NotFound("Shipment not found")
        logger.info(
            f"Shipment {shipment_id} deleted",
            extra={'extra_fields': {'shipment_id': shipment_id, 'admin_id': requester.id}},
        )

    # Claiming

    def claim_preview(self, shipment_id: int) -> ClaimPreview:
        record = self._require_shipment(shipment_id)
        owner = self.store.find_account(record.account_id)
        if owner is None or not owner.is_guest:
            raise NotClaimable()
        shipment = self._to_read(record, owner=owner)
        return ClaimPreview(
            id=shipment.id,
            receiver_name=shipment.receiver_name,
            weight=shipment.weight,
            tier=shipment.tier,
            box_color=shipment.box_color,
            total_cost=shipment.total_cost,
            status=shipment.status,
            created_at=shipment.created_at,
            destination_country=shipment.destination_country,
            guest_email=owner.email,
        )

    def claim_shipment(self, shipment_id: int, first_name: str, last_name: str, password: str) -> AccountRead:
        """Upgrade the guest owner of a shipment to a registered user."""
        first_name = require_text(first_name, "First name is required")
        last_name = require_text(last_name, "Last name is required")
        password = require_password(password)

        record = self._require_shipment(shipment_id)
        owner = self.store.find_account(record.account_id)
        if owner is None or not owner.is_guest:
            raise NotClaimable()

        upgraded = self.store.claim_guest_account(owner.id, {
            "first_name": first_name,
            "last_name": last_name,
            "password_hash": hash_password(password),
            "account_type": AccountType.REGISTERED_USER,
            "is_email_verified": True,
        })
        if upgraded is None:
            logger.warning(
                "Concurrent claim lost",
                extra={'extra_fields': {'shipment_id': shipment_id, 'account_id': owner.id}},
            )
            raise AlreadyClaimed()

        logger.info(
            f"Guest account {owner.id} claimed via shipment {shipment_id}",
            extra={'extra_fields': {'shipment_id': shipment_id, 'account_id': owner.id}},
        )
        return AccountRead.model_validate(upgraded)

    # Helpers

    def _require_shipment(self, shipment_id: int) -> ShipmentRecord:
        record = self.store.find_shipment(shipment_id)
        if record is None:
            raise NotFound("Shipment not found")
        return record

    def _require_access(self, record: ShipmentRecord, requester: Optional[AccountRecord]) -> None:
        if requester is None:
            raise Unauthenticated()
        if not requester.is_admin and record.account_id != requester.id:
            raise Forbidden()

    def _require_admin(self, requester: Optional[AccountRecord]) -> None:
        if requester is None:
            raise Unauthenticated()
        if not requester.is_admin:
            raise Forbidden("Administrator access required")

    def _to_read(self, record: ShipmentRecord, owner: Optional[AccountRecord] = None) -> ShipmentRead:
        entries = newest_first(self.store.list_status_entries(record.id))
        current = latest_entry(entries)
        if current is None:
            raise NotFound(f"No status history for shipment {record.id}")
        if owner is None:
            owner = self.store.find_account(record.account_id)
        country = self.store.find_country(record.country_id)
        return ShipmentRead(
            id=record.id,
            account_id=record.account_id,
            owner_email=owner.email if owner else None,
            owner_account_type=owner.account_type if owner else None,
            receiver_name=record.receiver_name,
            weight=record.weight,
            tier=pricing.tier_name(record.weight),
            box_color=record.box_color,
            country_id=record.country_id,
            destination_country=CountryRead.model_validate(country) if country else None,
            total_cost=record.total_cost,
            status=current.status,
            status_history=[StatusEntryRead.model_validate(e) for e in entries],
            created_at=record.created_at,
        )
