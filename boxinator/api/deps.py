"""FastAPI dependencies: store access, services and the bearer account."""
from typing import Optional

from fastapi import Depends, Request

from boxinator.application.accounts import AccountService
from boxinator.application.countries import CountryService
from boxinator.application.service import ShipmentService
from boxinator.auth_local import decode_access_token
from boxinator.core.logging_config import set_request_context
from boxinator.domain.records import AccountRecord
from boxinator.errors import Forbidden, Unauthenticated
from boxinator.infrastructure.mailer import Mailer
from boxinator.infrastructure.store import ShipmentStore
from boxinator.rate_limit import AuthRateLimiter

BEARER_PREFIX = "Bearer "


def get_store(request: Request) -> ShipmentStore:
    return request.app.state.store


def get_mailer(request: Request) -> Optional[Mailer]:
    return getattr(request.app.state, "mailer", None)


def get_rate_limiter(request: Request) -> AuthRateLimiter:
    return request.app.state.rate_limiter


def get_shipment_service(
    store: ShipmentStore = Depends(get_store),
    mailer: Optional[Mailer] = Depends(get_mailer),
) -> ShipmentService:
    return ShipmentService(store, notifier=mailer)


def get_account_service(
    store: ShipmentStore = Depends(get_store),
    mailer: Optional[Mailer] = Depends(get_mailer),
) -> AccountService:
    return AccountService(store, mailer=mailer)


def get_country_service(store: ShipmentStore = Depends(get_store)) -> CountryService:
    return CountryService(store)


def _bearer_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith(BEARER_PREFIX):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def _remember(request: Request, account: AccountRecord) -> None:
    # Sync dependencies run in a copied context; request.state reaches the access log
    request.state.account_id = account.id
    set_request_context(account_id=str(account.id))


def get_current_account(
    request: Request,
    accounts: AccountService = Depends(get_account_service),
) -> AccountRecord:
    token = _bearer_token(request)
    if token is None:
        raise Unauthenticated("Missing token")
    account = accounts.resolve_token_subject(decode_access_token(token))
    if account is None:
        raise Unauthenticated("Invalid token")
    _remember(request, account)
    return account


def get_optional_account(
    request: Request,
    accounts: AccountService = Depends(get_account_service),
) -> Optional[AccountRecord]:
    """Like get_current_account, but a missing or bad token yields None."""
    token = _bearer_token(request)
    if token is None:
        return None
    account = accounts.resolve_token_subject(decode_access_token(token))
    if account is not None:
        _remember(request, account)
    return account


def require_admin(account: AccountRecord = Depends(get_current_account)) -> AccountRecord:
    if not account.is_admin:
        raise Forbidden("Administrator access required")
    return account


def client_host(request: Request) -> str:
    return request.client.host if request.client else "unknown"
