import math

from boxinator.core.logging_config import get_logger
from boxinator.domain.pricing import is_nordic_country
from boxinator.domain.records import AccountRecord, ShipmentFilter
from boxinator.domain.validators import is_valid_country_code, require_text
from boxinator.errors import Forbidden, NotFound, ValidationFailed
from boxinator.infrastructure.store import ShipmentStore

from .schemas import CountryCreate, CountryRead, CountryUpdate

logger = get_logger(__name__)


def _check_multiplier(multiplier: float) -> float:
    if not math.isfinite(multiplier) or multiplier < 0:
        raise ValidationFailed("Multiplier must be a finite, non-negative number")
    return float(multiplier)


def _warn_if_nordic_surcharge(country) -> None:
    # Nordic destinations are meant to pay the flat fee only
    if is_nordic_country(country.name) and country.multiplier > 0:
        logger.warning(
            f"Nordic country {country.name} saved with multiplier {country.multiplier}; "
            "its shipments will cost more than the flat fee",
            extra={'extra_fields': {'country_id': country.id, 'multiplier': country.multiplier}},
        )


class CountryService:
    """Country catalogue. Multiplier changes only affect future shipments."""

    def __init__(self, store: ShipmentStore):
        self.store = store

    def list(self, active_only: bool = False) -> list[CountryRead]:
        return [CountryRead.model_validate(c) for c in self.store.list_countries(active_only=active_only)]

    def get(self, country_id: int) -> CountryRead:
        country = self.store.find_country(country_id)
        if country is None:
            raise NotFound("Country not found")
        return CountryRead.model_validate(country)

    def create(self, data: CountryCreate, requester: AccountRecord) -> CountryRead:
        self._require_admin(requester)
        if not is_valid_country_code(data.code):
            raise ValidationFailed("Country code must be 2-3 letters")
        country = self.store.create_country({
            "name": require_text(data.name, "Country name is required"),
            "code": data.code.upper(),
            "multiplier": _check_multiplier(data.multiplier),
            "is_active": data.is_active,
        })
        logger.info(
            f"Country created: {country.name}",
            extra={'extra_fields': {'country_id': country.id, 'multiplier': country.multiplier}},
        )
        _warn_if_nordic_surcharge(country)
        return CountryRead.model_validate(country)

    def update(self, country_id: int, data: CountryUpdate, requester: AccountRecord) -> CountryRead:
        self._require_admin(requester)
        patch = {}
        if data.name is not None:
            patch["name"] = require_text(data.name, "Country name is required")
        if data.code is not None:
            if not is_valid_country_code(data.code):
                raise ValidationFailed("Country code must be 2-3 letters")
            patch["code"] = data.code.upper()
        if data.multiplier is not None:
            patch["multiplier"] = _check_multiplier(data.multiplier)
        if data.is_active is not None:
            patch["is_active"] = data.is_active
        if not patch:
            return self.get(country_id)

        country = self.store.update_country(country_id, patch)
        logger.info(
            f"Country updated: {country.name}",
            extra={'extra_fields': {'country_id': country_id, 'fields': sorted(patch)}},
        )
        if "name" in patch or "multiplier" in patch:
            _warn_if_nordic_surcharge(country)
        return CountryRead.model_validate(country)

    def delete(self, country_id: int, requester: AccountRecord) -> None:
        self._require_admin(requester)
        country = self.store.find_country(country_id)
        if country is None:
            raise NotFound("Country not found")
        if self.store.list_shipments(ShipmentFilter(country_id=country_id)):
            raise ValidationFailed(
                "Cannot delete country with existing shipments. Consider deactivating instead."
            )
        if not self.store.delete_country(country_id):
            raise NotFound("Country not found")
        logger.info(f"Country deleted: {country.name}", extra={'extra_fields': {'country_id': country_id}})

    def _require_admin(self, requester: AccountRecord) -> None:
        if not requester.is_admin:
            raise Forbidden("Administrator access required")
