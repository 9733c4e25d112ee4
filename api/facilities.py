"""Facility and mess directory API router.

Lookups are public so students can pick their facility and mess while
registering. Creating facilities and changing messes needs a mess admin;
mess changes are limited to the admin's own facility.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.exceptions import ForbiddenError
from core.logger import get_logger
from core.security import Principal, get_current_principal, require_role
from database import models
from database.deps import get_db_read, get_db_write
from schemas.facility_schema import (
    AvailabilityResponse,
    DirectoryEntry,
    DirectoryResponse,
    FacilityByMessResponse,
    FacilityCreateRequest,
    FacilityDetailResponse,
    FacilityListResponse,
    FacilityResponse,
    FacilitySummary,
    MessCreateRequest,
    MessDetailResponse,
    MessListResponse,
    MessNameUniqueResponse,
    MessResponse,
    MessUpdateRequest,
)
from services.directory import directory_service

logger = get_logger("api.facilities")
router = APIRouter(prefix="/api/facilities", tags=["facilities"])

admin_only = require_role("mess_admin")


def to_facility_response(facility: models.Facility) -> FacilityResponse:
    out = FacilityResponse.model_validate(facility)
    out.active_messes_count = sum(1 for m in facility.messes if m.is_active)
    return out


def _by_mess(facility: models.Facility, mess: models.Mess) -> FacilityByMessResponse:
    return FacilityByMessResponse(
        facility=FacilitySummary(id=facility.id, name=facility.name, type=facility.type),
        mess=MessResponse.model_validate(mess),
    )


@router.get("", response_model=FacilityListResponse)
def list_facilities(db: Session = Depends(get_db_read)):
    """Active facilities with their messes, sorted by name."""
    facilities = [to_facility_response(f) for f in directory_service.list_facilities(db)]
    return FacilityListResponse(count=len(facilities), data=facilities)


@router.get("/directory", response_model=DirectoryResponse)
def get_directory(db: Session = Depends(get_db_read)):
    entries = [
        DirectoryEntry(
            facility_id=facility.id,
            facility_name=facility.name,
            facility_type=facility.type,
            messes=[MessResponse.model_validate(m) for m in messes],
        )
        for facility, messes in directory_service.directory(db)
    ]
    return DirectoryResponse(data=entries)


@router.get("/messes", response_model=MessListResponse)
def get_facility_messes(facility: Optional[str] = None, db: Session = Depends(get_db_read)):
    """Active messes of the facility named by the ``facility`` query parameter."""
    messes = directory_service.get_facility_messes(db, facility)
    return MessListResponse(data=[MessResponse.model_validate(m) for m in messes])


@router.get("/by-mess", response_model=FacilityByMessResponse)
def get_facility_by_mess_name(mess_name: Optional[str] = Query(None, alias="messName"), db: Session = Depends(get_db_read)):
    return _by_mess(*directory_service.get_facility_by_mess_name(db, mess_name))


@router.get("/by-mess-id/{mess_id}", response_model=FacilityByMessResponse)
def get_facility_by_mess_id(mess_id: str, db: Session = Depends(get_db_read)):
    return _by_mess(*directory_service.get_facility_by_mess_id(db, mess_id))


@router.get("/check-name", response_model=AvailabilityResponse)
def check_facility_name(name: Optional[str] = None, db: Session = Depends(get_db_read)):
    available, message = directory_service.check_facility_name(db, name)
    return AvailabilityResponse(available=available, message=message)


@router.get("/check-mess", response_model=AvailabilityResponse)
def check_mess_name(facility: Optional[str] = None, mess: Optional[str] = None, db: Session = Depends(get_db_read)):
    available, message = directory_service.check_mess_name(db, facility, mess)
    return AvailabilityResponse(available=available, message=message)


@router.get("/{facility_id}/messes/unique", response_model=MessNameUniqueResponse)
def is_mess_name_unique(
    facility_id: int,
    name: str = Query(..., min_length=1),
    exclude_mess_id: Optional[str] = Query(None, alias="excludeMessId"),
    db: Session = Depends(get_db_read),
):
    return MessNameUniqueResponse(unique=directory_service.is_mess_name_unique(db, facility_id, name, exclude_mess_id))


@router.post("", response_model=FacilityDetailResponse, status_code=201)
def create_facility(
    payload: FacilityCreateRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db_write),
):
    if principal.role != "mess_admin":
        raise ForbiddenError(f"User role {principal.role} is not authorized to access this route")
    facility = directory_service.create_facility(db, payload, created_by=principal.id)
    return FacilityDetailResponse(message="Facility created successfully", data=to_facility_response(facility))


@router.post("/{facility_id}/messes", response_model=MessDetailResponse, status_code=201)
def add_mess(
    facility_id: int,
    payload: MessCreateRequest,
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db_write),
):
    mess = directory_service.add_mess(db, facility_id, payload, admin=principal)
    return MessDetailResponse(message="Mess added successfully", data=MessResponse.model_validate(mess))


@router.put("/{facility_id}/messes/{mess_id}", response_model=MessDetailResponse)
def update_mess(
    facility_id: int,
    mess_id: str,
    payload: MessUpdateRequest,
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db_write),
):
    mess = directory_service.update_mess(db, facility_id, mess_id, payload, admin=principal)
    return MessDetailResponse(message="Mess updated successfully", data=MessResponse.model_validate(mess))


@router.delete("/{facility_id}/messes/{mess_id}", response_model=MessDetailResponse)
def deactivate_mess(
    facility_id: int,
    mess_id: str,
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db_write),
):
    mess = directory_service.deactivate_mess(db, facility_id, mess_id, admin=principal)
    return MessDetailResponse(message="Mess deactivated successfully", data=MessResponse.model_validate(mess))
