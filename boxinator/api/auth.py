"""Registration, login and two-factor enrolment.

Registration and login are guarded by the failed-attempt limiter.
"""
from typing import Union

from fastapi import APIRouter, Depends, Request

from boxinator.api.deps import client_host, get_account_service, get_current_account, get_rate_limiter
from boxinator.application.accounts import AccountService
from boxinator.application.schemas import (
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    TokenResponse,
    TwoFactorSetup,
    TwoFactorVerify,
)
from boxinator.core.logging_config import get_logger
from boxinator.domain.records import AccountRecord
from boxinator.errors import Conflict, Unauthenticated
from boxinator.rate_limit import AuthRateLimiter

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=TokenResponse, status_code=201)
def register(
    payload: RegisterRequest,
    request: Request,
    service: AccountService = Depends(get_account_service),
    limiter: AuthRateLimiter = Depends(get_rate_limiter),
):
    client = client_host(request)
    limiter.check(client)
    try:
        token = service.register(payload)
    except Conflict:
        limiter.record_failure(client)
        raise
    limiter.reset(client)
    return token


@router.post("/login", response_model=Union[TokenResponse, dict])
def login(
    payload: LoginRequest,
    request: Request,
    service: AccountService = Depends(get_account_service),
    limiter: AuthRateLimiter = Depends(get_rate_limiter),
):
    client = client_host(request)
    limiter.check(client)
    try:
        result = service.authenticate(payload)
    except Unauthenticated:
        limiter.record_failure(client)
        logger.warning(
            "Failed login attempt",
            extra={'extra_fields': {'client': client}},
        )
        raise
    limiter.reset(client)
    return result


@router.post("/setup-2fa", response_model=TwoFactorSetup)
def setup_two_factor(
    account: AccountRecord = Depends(get_current_account),
    service: AccountService = Depends(get_account_service),
):
    return service.setup_two_factor(account)


@router.post("/verify-2fa", response_model=MessageResponse)
def verify_two_factor(
    payload: TwoFactorVerify,
    account: AccountRecord = Depends(get_current_account),
    service: AccountService = Depends(get_account_service),
):
    return service.verify_two_factor(account, payload.token)


@router.post("/disable-2fa", response_model=MessageResponse)
def disable_two_factor(
    account: AccountRecord = Depends(get_current_account),
    service: AccountService = Depends(get_account_service),
):
    return service.disable_two_factor(account)
