from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from boxinator.api.deps import get_current_account, get_optional_account, get_shipment_service, require_admin
from boxinator.application.schemas import (
    ClaimPreview,
    ClaimRequest,
    RevenueSummary,
    ShipmentCreate,
    ShipmentRead,
    StatusUpdate,
    TokenResponse,
)
from boxinator.application.service import CANCELLED_VIEW, COMPLETE_VIEW, ShipmentService
from boxinator.auth_local import create_access_token
from boxinator.domain.records import AccountRecord

router = APIRouter(prefix="/shipments", tags=["shipments"])


@router.get("/", response_model=list[ShipmentRead])
def list_shipments(
    status: Optional[str] = None,
    created_from: Optional[datetime] = None,
    created_to: Optional[datetime] = None,
    account: AccountRecord = Depends(get_current_account),
    service: ShipmentService = Depends(get_shipment_service),
):
    return service.list_shipments(account, status=status, created_from=created_from, created_to=created_to)


@router.get("/complete", response_model=list[ShipmentRead])
def list_complete(
    account: AccountRecord = Depends(get_current_account),
    service: ShipmentService = Depends(get_shipment_service),
):
    return service.list_shipments(account, view=COMPLETE_VIEW)


@router.get("/cancelled", response_model=list[ShipmentRead])
def list_cancelled(
    account: AccountRecord = Depends(get_current_account),
    service: ShipmentService = Depends(get_shipment_service),
):
    return service.list_shipments(account, view=CANCELLED_VIEW)


@router.get("/stats/revenue", response_model=RevenueSummary)
def revenue(
    created_from: Optional[datetime] = Query(None, alias="from"),
    created_to: Optional[datetime] = Query(None, alias="to"),
    admin: AccountRecord = Depends(require_admin),
    service: ShipmentService = Depends(get_shipment_service),
):
    return service.revenue_summary(admin, created_from=created_from, created_to=created_to)


@router.get("/customer/{account_id}", response_model=list[ShipmentRead])
def list_for_customer(
    account_id: int,
    admin: AccountRecord = Depends(require_admin),
    service: ShipmentService = Depends(get_shipment_service),
):
    return service.list_for_account(account_id, admin)


@router.get("/claim/{shipment_id}", response_model=ClaimPreview)
def claim_preview(shipment_id: int, service: ShipmentService = Depends(get_shipment_service)):
    return service.claim_preview(shipment_id)


@router.post("/claim/{shipment_id}", response_model=TokenResponse)
def claim_shipment(
    shipment_id: int,
    payload: ClaimRequest,
    service: ShipmentService = Depends(get_shipment_service),
):
    account = service.claim_shipment(shipment_id, payload.first_name, payload.last_name, payload.password)
    return TokenResponse(access_token=create_access_token(account.id, account.email), account=account)


@router.post("/", response_model=ShipmentRead, status_code=201)
def create_shipment(
    payload: ShipmentCreate,
    account: Optional[AccountRecord] = Depends(get_optional_account),
    service: ShipmentService = Depends(get_shipment_service),
):
    return service.create_shipment(
        receiver_name=payload.receiver_name,
        weight_kg=payload.weight,
        box_color=payload.box_color,
        country_id=payload.country_id,
        requester=account,
        guest_email=payload.guest_email,
    )


@router.get("/{shipment_id}", response_model=ShipmentRead)
def get_shipment(
    shipment_id: int,
    account: AccountRecord = Depends(get_current_account),
    service: ShipmentService = Depends(get_shipment_service),
):
    return service.get_shipment(shipment_id, account)


@router.put("/{shipment_id}", response_model=ShipmentRead)
def update_shipment(
    shipment_id: int,
    payload: StatusUpdate,
    account: AccountRecord = Depends(get_current_account),
    service: ShipmentService = Depends(get_shipment_service),
):
    return service.update_status(shipment_id, payload.status, payload.note, account)


@router.delete("/{shipment_id}", status_code=204)
def delete_shipment(
    shipment_id: int,
    admin: AccountRecord = Depends(require_admin),
    service: ShipmentService = Depends(get_shipment_service),
):
    service.delete_shipment(shipment_id, admin)
    return Response(status_code=204)
