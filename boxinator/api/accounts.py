from fastapi import APIRouter, Depends, Response

from boxinator.api.deps import get_account_service, get_current_account, require_admin
from boxinator.application.accounts import AccountService
from boxinator.application.schemas import AccountCreate, AccountRead, AccountUpdate
from boxinator.domain.records import AccountRecord

router = APIRouter(prefix="/account", tags=["account"])


@router.get("/me", response_model=AccountRead)
def me(account: AccountRecord = Depends(get_current_account)):
    return AccountRead.model_validate(account)


@router.get("/", response_model=list[AccountRead])
def list_accounts(
    admin: AccountRecord = Depends(require_admin),
    service: AccountService = Depends(get_account_service),
):
    return service.list(admin)


@router.post("/", response_model=AccountRead, status_code=201)
def create_account(
    payload: AccountCreate,
    admin: AccountRecord = Depends(require_admin),
    service: AccountService = Depends(get_account_service),
):
    return service.create(payload, admin)


@router.get("/{account_id}", response_model=AccountRead)
def get_account(
    account_id: int,
    account: AccountRecord = Depends(get_current_account),
    service: AccountService = Depends(get_account_service),
):
    return service.get(account_id, account)


@router.put("/{account_id}", response_model=AccountRead)
def update_account(
    account_id: int,
    payload: AccountUpdate,
    account: AccountRecord = Depends(get_current_account),
    service: AccountService = Depends(get_account_service),
):
    return service.update(account_id, payload, account)


@router.delete("/{account_id}", status_code=204)
def delete_account(
    account_id: int,
    admin: AccountRecord = Depends(require_admin),
    service: AccountService = Depends(get_account_service),
):
    service.delete(account_id, admin)
    return Response(status_code=204)
