import logging
from datetime import timedelta

import pytest

from conftest import RacingStore, RecordingNotifier, make_account, run_concurrently
from boxinator.application.countries import CountryService
from boxinator.application.schemas import CountryCreate, CountryUpdate
from boxinator.application.service import CANCELLED_VIEW, COMPLETE_VIEW, ShipmentService
from boxinator.auth_local import verify_password
from boxinator.domain.records import AccountType, ShipmentStatus, utcnow
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

RED = "rgba(255, 0, 0, 1)"


def _create(service, country, requester=None, guest_email=None, weight=2, receiver="Jane Smith"):
    return service.create_shipment(
        receiver_name=receiver,
        weight_kg=weight,
        box_color=RED,
        country_id=country.id,
        requester=requester,
        guest_email=guest_email,
    )


class TestCreateShipment:
    def test_registered_user_shipment(self, service, notifier, user, germany):
        shipment = _create(service, germany, requester=user)

        assert shipment.total_cost == 210.0
        assert shipment.tier == "Humble"
        assert shipment.account_id == user.id
        assert shipment.destination_country.name == "Germany"
        assert shipment.status == ShipmentStatus.CREATED
        assert [e.status for e in shipment.status_history] == [ShipmentStatus.CREATED]
        assert notifier.sent == [(user.email, shipment.id, False)]

    def test_nordic_shipment_costs_flat_fee(self, service, user, norway):
        assert _create(service, norway, requester=user, weight=8).total_cost == 200.0

    def test_guest_shipment_creates_guest_account(self, service, store, notifier, germany):
        shipment = _create(service, germany, guest_email="  Guest@Example.com ")

        guest = store.find_account_by_email("guest@example.com")
        assert guest is not None
        assert guest.account_type == AccountType.GUEST
        assert guest.password_hash is None
        assert shipment.account_id == guest.id
        assert shipment.owner_account_type == AccountType.GUEST
        assert notifier.sent == [("guest@example.com", shipment.id, True)]

    def test_guest_email_reuses_existing_guest(self, service, store, germany):
        first = _create(service, germany, guest_email="guest@example.com")
        second = _create(service, germany, guest_email="GUEST@example.com")

        assert first.account_id == second.account_id
        assert len(store.list_accounts()) == 1

    def test_guest_email_of_registered_account(self, service, notifier, user, germany):
        shipment = _create(service, germany, guest_email=user.email)

        assert shipment.account_id == user.id
        assert notifier.sent[-1][2] is False

    def test_unauthenticated_without_guest_email(self, service, germany):
        with pytest.raises(Unauthenticated):
            _create(service, germany)

    def test_invalid_guest_email(self, service, germany):
        with pytest.raises(ValidationFailed):
            _create(service, germany, guest_email="not-an-email")

    def test_inactive_country(self, service, store, atlantis):
        with pytest.raises(InvalidCountry):
            _create(service, atlantis, guest_email="guest@example.com")
        # no guest left behind for a rejected shipment
        assert store.find_account_by_email("guest@example.com") is None

    def test_missing_country(self, service, user):
        with pytest.raises(InvalidCountry):
            service.create_shipment("Jane", 2, RED, 999, requester=user)

    @pytest.mark.parametrize("weight", [0, 3, 4.5, -2, True, None])
    def test_unsellable_weight(self, service, user, germany, weight):
        with pytest.raises(ValidationFailed):
            _create(service, germany, requester=user, weight=weight)

    @pytest.mark.parametrize("color", ["red", "rgba(256, 0, 0, 1)", "rgba(0, 0, 0, 2)", "", None])
    def test_invalid_box_color(self, service, user, germany, color):
        with pytest.raises(ValidationFailed):
            service.create_shipment("Jane", 2, color, germany.id, requester=user)

    def test_blank_receiver(self, service, user, germany):
        with pytest.raises(ValidationFailed):
            _create(service, germany, requester=user, receiver="   ")

    def test_receipt_failure_does_not_fail_creation(self, store, user, germany):
        service = ShipmentService(store, notifier=RecordingNotifier(fail=True))

        shipment = _create(service, germany, requester=user)

        assert store.find_shipment(shipment.id) is not None
        assert shipment.status == ShipmentStatus.CREATED

    def test_cost_is_fixed_at_creation(self, service, store, user, germany):
        shipment = _create(service, germany, requester=user)
        store.update_country(germany.id, {"multiplier": 50.0})

        assert service.get_shipment(shipment.id, user).total_cost == 210.0

    def test_concurrent_guest_creation_converges(self, store, germany):
        racing = RacingStore(store, "find_account_by_email")
        service = ShipmentService(racing)

        results = run_concurrently(
            lambda: _create(service, germany, guest_email="race@example.com"),
            lambda: _create(service, germany, guest_email="race@example.com"),
        )

        assert not [r for r in results if isinstance(r, Exception)]
        guests = [a for a in store.list_accounts() if a.email == "race@example.com"]
        assert len(guests) == 1
        assert {r.account_id for r in results} == {guests[0].id}


class TestStatusUpdates:
    @pytest.fixture
    def shipment(self, service, user, germany):
        return _create(service, germany, requester=user)

    def test_customer_cannot_advance_status(self, service, user, shipment):
        with pytest.raises(Forbidden):
            service.update_status(shipment.id, "DELIVERED", None, user)
        assert service.get_shipment(shipment.id, user).status == ShipmentStatus.CREATED

    def test_customer_can_cancel(self, service, user, shipment):
        updated = service.update_status(shipment.id, "CANCELLED", "Changed my mind", user)

        assert updated.status == ShipmentStatus.CANCELLED
        assert len(updated.status_history) == 2
        assert updated.status_history[0].note == "Changed my mind"
        assert updated.status_history[1] == shipment.status_history[0]

    def test_admin_advances_status_with_default_note(self, service, admin, shipment):
        updated = service.update_status(shipment.id, ShipmentStatus.RECEIVED, None, admin)

        assert updated.status == ShipmentStatus.RECEIVED
        assert updated.status_history[0].note == "Status changed to RECEIVED"

    def test_other_customer_is_forbidden(self, service, store, shipment):
        stranger = make_account(store, "stranger@example.com")
        with pytest.raises(Forbidden):
            service.update_status(shipment.id, "CANCELLED", None, stranger)

    def test_unknown_status(self, service, admin, shipment):
        with pytest.raises(ValidationFailed):
            service.update_status(shipment.id, "LOST", None, admin)

    def test_missing_shipment(self, service, admin):
        with pytest.raises(NotFound):
            service.update_status(404, "RECEIVED", None, admin)


class TestQueries:
    def test_get_shipment_access(self, service, store, user, admin, germany):
        shipment = _create(service, germany, requester=user)
        stranger = make_account(store, "stranger@example.com")

        assert service.get_shipment(shipment.id, admin).id == shipment.id
        with pytest.raises(Forbidden):
            service.get_shipment(shipment.id, stranger)
        with pytest.raises(Unauthenticated):
            service.get_shipment(shipment.id, None)
        with pytest.raises(NotFound):
            service.get_shipment(999, admin)

    def test_customer_sees_only_own_shipments(self, service, store, user, germany):
        other = make_account(store, "other@example.com")
        mine = _create(service, germany, requester=user)
        _create(service, germany, requester=other)

        assert [s.id for s in service.list_shipments(user)] == [mine.id]

    def test_admin_views_split_by_terminal_status(self, service, user, admin, germany):
        active = _create(service, germany, requester=user)
        delivered = _create(service, germany, requester=user)
        cancelled = _create(service, germany, requester=user)
        service.update_status(delivered.id, "DELIVERED", None, admin)
        service.update_status(cancelled.id, "CANCELLED", None, admin)

        assert [s.id for s in service.list_shipments(admin)] == [active.id]
        assert [s.id for s in service.list_shipments(admin, view=COMPLETE_VIEW)] == [delivered.id]
        assert [s.id for s in service.list_shipments(admin, view=CANCELLED_VIEW)] == [cancelled.id]
        assert [s.id for s in service.list_shipments(admin, status="DELIVERED")] == [delivered.id]

    def test_customer_active_view_keeps_history(self, service, user, admin, germany):
        shipment = _create(service, germany, requester=user)
        service.update_status(shipment.id, "DELIVERED", None, admin)

        assert [s.id for s in service.list_shipments(user)] == [shipment.id]

    def test_status_filter_matches_current_status(self, service, user, admin, germany):
        received = _create(service, germany, requester=user)
        _create(service, germany, requester=user)
        service.update_status(received.id, "RECEIVED", None, admin)

        assert [s.id for s in service.list_shipments(user, status="RECEIVED")] == [received.id]
        assert len(service.list_shipments(user, status="CREATED")) == 1
        with pytest.raises(ValidationFailed):
            service.list_shipments(user, status="SHIPPED")

    def test_created_range_filter(self, service, user, germany):
        _create(service, germany, requester=user)
        future = utcnow() + timedelta(days=1)

        assert service.list_shipments(user, created_from=future) == []
        assert len(service.list_shipments(user, created_to=future)) == 1

    def test_newest_first(self, service, user, germany):
        first = _create(service, germany, requester=user)
        second = _create(service, germany, requester=user)

        assert [s.id for s in service.list_shipments(user)] == [second.id, first.id]

    def test_list_for_account_requires_admin(self, service, user, admin, germany):
        shipment = _create(service, germany, requester=user)

        assert [s.id for s in service.list_for_account(user.id, admin)] == [shipment.id]
        with pytest.raises(Forbidden):
            service.list_for_account(user.id, user)

    def test_revenue_summary(self, service, user, admin, germany, norway):
        _create(service, germany, requester=user)
        cancelled = _create(service, norway, requester=user, weight=1)
        service.update_status(cancelled.id, "CANCELLED", None, user)

        summary = service.revenue_summary(admin)

        assert summary.shipment_count == 2
        assert summary.total_revenue == 410.0
        assert summary.by_status["CREATED"] == 1
        assert summary.by_status["CANCELLED"] == 1
        with pytest.raises(Forbidden):
            service.revenue_summary(user)

    def test_revenue_by_country_and_account_type(self, service, user, admin, germany, norway):
        _create(service, germany, requester=user)
        _create(service, germany, requester=user, weight=8)
        _create(service, norway, guest_email="guest@example.com")

        summary = service.revenue_summary(admin)

        assert [(row.country_id, row.shipment_count, row.revenue) for row in summary.by_country] == [
            (germany.id, 2, 450.0),
            (norway.id, 1, 200.0),
        ]
        assert summary.by_country[0].country.name == "Germany"
        assert summary.accounts_by_type == {"GUEST": 1, "REGISTERED_USER": 1, "ADMINISTRATOR": 1}

    def test_revenue_date_range(self, service, user, admin, germany):
        _create(service, germany, requester=user)
        now = utcnow()

        later = service.revenue_summary(admin, created_from=now + timedelta(days=1))
        assert later.shipment_count == 0
        assert later.total_revenue == 0
        assert later.by_country == []
        assert later.created_from == now + timedelta(days=1)

        window = service.revenue_summary(
            admin, created_from=now - timedelta(days=1), created_to=now + timedelta(days=1),
        )
        assert window.shipment_count == 1
        assert window.total_revenue == 210.0


class TestDeleteShipment:
    def test_admin_delete_removes_history(self, service, store, user, admin, germany):
        shipment = _create(service, germany, requester=user)
        service.update_status(shipment.id, "RECEIVED", None, admin)

        service.delete_shipment(shipment.id, admin)

        assert store.find_shipment(shipment.id) is None
        assert store.list_status_entries(shipment.id) == []
        with pytest.raises(NotFound):
            service.ledger.current_status(shipment.id)

    def test_customer_cannot_delete(self, service, user, germany):
        shipment = _create(service, germany, requester=user)
        with pytest.raises(Forbidden):
            service.delete_shipment(shipment.id, user)

    def test_delete_missing(self, service, admin):
        with pytest.raises(NotFound):
            service.delete_shipment(999, admin)


class TestClaim:
    @pytest.fixture
    def guest_shipment(self, service, germany):
        return _create(service, germany, guest_email="guest@example.com")

    def test_preview(self, service, guest_shipment):
        preview = service.claim_preview(guest_shipment.id)

        assert preview.guest_email == "guest@example.com"
        assert preview.total_cost == 210.0

    def test_preview_of_registered_shipment(self, service, user, germany):
        shipment = _create(service, germany, requester=user)
        with pytest.raises(NotClaimable):
            service.claim_preview(shipment.id)

    def test_claim_upgrades_guest(self, service, store, guest_shipment):
        account = service.claim_shipment(guest_shipment.id, "Ada", "Lovelace", "analytical")

        assert account.account_type == AccountType.REGISTERED_USER
        assert account.first_name == "Ada"
        assert account.is_email_verified is True
        assert not hasattr(account, "password_hash")
        stored = store.find_account(guest_shipment.account_id)
        assert verify_password("analytical", stored.password_hash)

    def test_claim_twice(self, service, guest_shipment):
        service.claim_shipment(guest_shipment.id, "Ada", "Lovelace", "analytical")
        with pytest.raises(NotClaimable):
            service.claim_shipment(guest_shipment.id, "Eve", "Mallory", "something-else")

    def test_claim_registered_shipment(self, service, user, germany):
        shipment = _create(service, germany, requester=user)
        with pytest.raises(NotClaimable):
            service.claim_shipment(shipment.id, "Ada", "Lovelace", "analytical")

    def test_claim_validation(self, service, guest_shipment):
        with pytest.raises(ValidationFailed):
            service.claim_shipment(guest_shipment.id, "Ada", "Lovelace", "short")
        with pytest.raises(ValidationFailed):
            service.claim_shipment(guest_shipment.id, "", "Lovelace", "analytical")

    def test_claim_missing_shipment(self, service):
        with pytest.raises(NotFound):
            service.claim_shipment(999, "Ada", "Lovelace", "analytical")

    def test_concurrent_claims_one_wins(self, store, guest_shipment):
        service = ShipmentService(RacingStore(store, "find_account"))

        results = run_concurrently(
            lambda: service.claim_shipment(guest_shipment.id, "Ada", "Lovelace", "analytical"),
            lambda: service.claim_shipment(guest_shipment.id, "Eve", "Mallory", "something-else"),
        )

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert isinstance(losers[0], AlreadyClaimed)
        stored = store.find_account(guest_shipment.account_id)
        assert stored.first_name == winners[0].first_name
        assert stored.account_type == AccountType.REGISTERED_USER


class TestCountryCatalogue:
    @pytest.fixture
    def countries(self, store):
        return CountryService(store)

    def test_delete_unused_country(self, countries, store, admin, germany):
        countries.delete(germany.id, admin)

        assert store.find_country(germany.id) is None
        with pytest.raises(NotFound):
            countries.delete(germany.id, admin)

    def test_delete_refused_while_shipments_reference_country(self, countries, service, store, user, admin, germany):
        _create(service, germany, requester=user)

        with pytest.raises(ValidationFailed, match="Consider deactivating"):
            countries.delete(germany.id, admin)
        assert store.find_country(germany.id) is not None

    def test_store_refuses_referenced_country(self, service, store, user, germany):
        _create(service, germany, requester=user)

        with pytest.raises(Conflict):
            store.delete_country(germany.id)

    def test_delete_requires_admin(self, countries, user, germany):
        with pytest.raises(Forbidden):
            countries.delete(germany.id, user)

    def test_nordic_multiplier_logs_warning(self, countries, admin, norway, caplog):
        caplog.set_level(logging.WARNING, logger="boxinator.application.countries")

        countries.update(norway.id, CountryUpdate(multiplier=2.0), admin)
        countries.create(CountryCreate(name="Sweden", code="SE", multiplier=0.0), admin)

        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert "Norway" in warnings[0].getMessage()

    def test_non_nordic_multiplier_is_quiet(self, countries, admin, germany, caplog):
        caplog.set_level(logging.WARNING, logger="boxinator.application.countries")

        countries.update(germany.id, CountryUpdate(multiplier=6.0), admin)

        assert not [r for r in caplog.records if r.levelno == logging.WARNING]
