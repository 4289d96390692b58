"""
Idempotent seeding of the country catalogue and the bootstrap accounts.

    python -m boxinator.seed

Accounts are only created when their password is configured
(ADMIN_PASSWORD, DEMO_USER_PASSWORD); existing rows are left untouched.
"""

from boxinator.auth_local import hash_password
from boxinator.core.logging_config import get_logger, setup_logging
from boxinator.core_settings import Settings, get_settings
from boxinator.domain.records import AccountType
from boxinator.errors import Conflict
from boxinator.infrastructure.store import ShipmentStore, build_store

logger = get_logger(__name__)

# (name, code, multiplier); Nordic destinations only pay the flat fee
COUNTRIES = [
    ("Norway", "NO", 0.0),
    ("Sweden", "SE", 0.0),
    ("Denmark", "DK", 0.0),
    ("Germany", "DE", 5.0),
    ("United Kingdom", "GB", 6.0),
    ("France", "FR", 5.5),
    ("Netherlands", "NL", 4.5),
    ("Belgium", "BE", 4.5),
    ("Switzerland", "CH", 7.0),
    ("Austria", "AT", 5.5),
    ("Italy", "IT", 6.5),
    ("Spain", "ES", 7.0),
    ("Portugal", "PT", 7.5),
    ("Finland", "FI", 3.0),
    ("Iceland", "IS", 4.0),
    ("United States", "US", 15.0),
    ("Canada", "CA", 12.0),
    ("Mexico", "MX", 18.0),
    ("Japan", "JP", 25.0),
    ("South Korea", "KR", 22.0),
    ("China", "CN", 20.0),
    ("Singapore", "SG", 28.0),
    ("Hong Kong", "HK", 26.0),
    ("India", "IN", 24.0),
    ("Thailand", "TH", 22.0),
    ("Australia", "AU", 30.0),
    ("New Zealand", "NZ", 32.0),
    ("Russia", "RU", 18.0),
    ("Brazil", "BR", 25.0),
    ("South Africa", "ZA", 22.0),
]


def seed_countries(store: ShipmentStore) -> int:
    created = 0
    for name, code, multiplier in COUNTRIES:
        if store.find_country_by_name(name) is not None:
            continue
        try:
            store.create_country({"name": name, "code": code, "multiplier": multiplier, "is_active": True})
            created += 1
        except Conflict:
            # another instance seeded it first
            continue
    return created


def seed_account(
    store: ShipmentStore,
    email: str,
    password: str,
    account_type: AccountType,
    first_name: str,
    last_name: str,
) -> bool:
    if store.find_account_by_email(email) is not None:
        return False
    try:
        store.create_account({
            "email": email,
            "password_hash": hash_password(password),
            "first_name": first_name,
            "last_name": last_name,
            "account_type": account_type,
            "is_email_verified": True,
        })
    except Conflict:
        return False
    logger.info(f"Seeded {account_type.value} account", extra={'extra_fields': {'email': email}})
    return True


def seed(store: ShipmentStore, settings: Settings) -> dict:
    summary = {"countries": seed_countries(store), "accounts": 0}
    if settings.ADMIN_PASSWORD:
        summary["accounts"] += seed_account(
            store, settings.ADMIN_EMAIL, settings.ADMIN_PASSWORD,
            AccountType.ADMINISTRATOR, "Admin", "User",
        )
    else:
        logger.warning("ADMIN_PASSWORD not set; skipping administrator account")
    if settings.DEMO_USER_PASSWORD:
        summary["accounts"] += seed_account(
            store, settings.DEMO_USER_EMAIL, settings.DEMO_USER_PASSWORD,
            AccountType.REGISTERED_USER, "John", "Doe",
        )
    logger.info("Seeding finished", extra={'extra_fields': summary})
    return summary


def main() -> None:
    settings = get_settings()
    setup_logging(service_name="boxinator-seed", level=settings.LOG_LEVEL, log_file=settings.LOG_FILE)
    store = build_store(settings)
    try:
        seed(store, settings)
    finally:
        store.close()


if __name__ == "__main__":
    main()
