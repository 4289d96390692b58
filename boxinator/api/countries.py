from fastapi import APIRouter, Depends, Response

from boxinator.api.deps import get_country_service, require_admin
from boxinator.application.countries import CountryService
from boxinator.application.schemas import CountryCreate, CountryRead, CountryUpdate
from boxinator.domain.records import AccountRecord

router = APIRouter(prefix="/countries", tags=["countries"])


@router.get("/", response_model=list[CountryRead])
def list_countries(active: bool = False, service: CountryService = Depends(get_country_service)):
    return service.list(active_only=active)


@router.get("/{country_id}", response_model=CountryRead)
def get_country(country_id: int, service: CountryService = Depends(get_country_service)):
    return service.get(country_id)


@router.post("/", response_model=CountryRead, status_code=201)
def create_country(
    payload: CountryCreate,
    admin: AccountRecord = Depends(require_admin),
    service: CountryService = Depends(get_country_service),
):
    return service.create(payload, admin)


@router.put("/{country_id}", response_model=CountryRead)
def update_country(
    country_id: int,
    payload: CountryUpdate,
    admin: AccountRecord = Depends(require_admin),
    service: CountryService = Depends(get_country_service),
):
    return service.update(country_id, payload, admin)


@router.delete("/{country_id}", status_code=204)
def delete_country(
    country_id: int,
    admin: AccountRecord = Depends(require_admin),
    service: CountryService = Depends(get_country_service),
):
    service.delete(country_id, admin)
    return Response(status_code=204)
