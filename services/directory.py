"""Facility and mess directory service.

A facility owns an ordered list of messes. Messes are appended, patched in
place or deactivated; they are never removed. Every mess mutation also
touches the owning facility row so that its version check serializes
concurrent changes to the same facility.
"""

import copy
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from core.config import DEFAULT_ADDED_MESS_CAPACITY, DEFAULT_FACILITY_MESS_CAPACITY, DEFAULT_OPERATING_HOURS
from core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from core.logger import get_logger
from core.repository import BaseRepository, run_in_transaction
from core.utils import generate_mess_id, utcnow
from database import models
from schemas.facility_schema import FacilityCreateRequest, MessCreateRequest, MessUpdateRequest

logger = get_logger("services.directory")

MESS_CONFLICT = "Mess with this name already exists in this facility"
FACILITY_CONFLICT = "Facility with this name already exists"


def find_mess(facility: models.Facility, mess_id: str) -> Optional[models.Mess]:
    return next((m for m in facility.messes if m.mess_id == mess_id), None)


def name_taken(facility: models.Facility, name: str, exclude_mess_id: Optional[str] = None) -> bool:
    """True when an active mess other than ``exclude_mess_id`` already uses ``name``."""
    wanted = name.strip().lower()
    return any(
        m.is_active and m.name.lower() == wanted and m.mess_id != exclude_mess_id
        for m in facility.messes
    )


def append_mess(
    facility: models.Facility,
    name: str,
    description: Optional[str] = None,
    capacity: Optional[int] = None,
    operating_hours: Optional[dict] = None,
) -> models.Mess:
    """Append an active mess to ``facility`` after the uniqueness check.

    Raises:
        ConflictError: If an active mess of the facility has the same name,
            ignoring case.
    """
    if name_taken(facility, name):
        raise ConflictError(MESS_CONFLICT, resource="Mess")
    mess = models.Mess(
        mess_id=generate_mess_id(facility.name, name),
        name=name.strip(),
        description=description,
        capacity=capacity,
        operating_hours=operating_hours,
        is_active=True,
        created_at=utcnow(),
    )
    facility.messes.append(mess)
    facility.updated_at = utcnow()
    return mess


class DirectoryService:
    """Creates facilities and manages the messes they own."""

    def _facilities(self, session: Session) -> BaseRepository[models.Facility]:
        return BaseRepository(models.Facility, session, resource="Facility")

    def _owned_facility(self, session: Session, facility_id: int, admin=None) -> models.Facility:
        facility = self._facilities(session).get_or_raise(facility_id)
        if admin is not None and admin.facility_id != facility.id:
            raise ForbiddenError("You can only manage messes of your own facility")
        return facility

    # Writes

    def create_facility(self, session: Session, payload: FacilityCreateRequest, created_by: Optional[int] = None) -> models.Facility:
        """Create a facility with one active mess.

        Raises:
            ConflictError: If a facility with exactly this name exists.
        """
        def operation():
            if self._facilities(session).first(models.Facility.name == payload.name) is not None:
                raise ConflictError(FACILITY_CONFLICT, resource="Facility")
            facility = models.Facility(
                name=payload.name,
                type=payload.type.value,
                description=payload.description,
                location=payload.location.model_dump() if payload.location else None,
                contact_info=payload.contact_info.model_dump() if payload.contact_info else None,
                is_active=True,
                created_by=created_by,
            )
            append_mess(
                facility,
                payload.mess_name,
                description=f"Main mess for {payload.name}",
                capacity=DEFAULT_FACILITY_MESS_CAPACITY,
                operating_hours=copy.deepcopy(DEFAULT_OPERATING_HOURS),
            )
            return self._facilities(session).add(facility)

        facility = run_in_transaction(session, operation, name="create_facility", conflict_message=FACILITY_CONFLICT)
        logger.info("Facility created: %s (id=%s)", facility.name, facility.id)
        return facility

    def add_mess(self, session: Session, facility_id: int, payload: MessCreateRequest, admin=None) -> models.Mess:
        """Append a mess to a facility.

        Raises:
            NotFoundError: If the facility does not exist.
            ForbiddenError: If ``admin`` belongs to another facility.
            ConflictError: If an active mess has the same name, ignoring case.
        """
        def operation():
            facility = self._owned_facility(session, facility_id, admin)
            mess = append_mess(
                facility,
                payload.name,
                description=payload.description or f"{payload.name} at {facility.name}",
                capacity=payload.capacity or DEFAULT_ADDED_MESS_CAPACITY,
                operating_hours=(
                    payload.operating_hours.model_dump(exclude_none=True)
                    if payload.operating_hours else copy.deepcopy(DEFAULT_OPERATING_HOURS)
                ),
            )
            session.flush()
            return mess

        mess = run_in_transaction(session, operation, name="add_mess", conflict_message=MESS_CONFLICT)
        logger.info("Mess %s added to facility id=%s", mess.mess_id, facility_id)
        return mess

    def update_mess(self, session: Session, facility_id: int, mess_id: str, patch: MessUpdateRequest, admin=None) -> models.Mess:
        """Overwrite every field set in ``patch``.

        A rename is checked against the other active messes of the facility.

        Raises:
            NotFoundError: If the facility or mess does not exist.
            ConflictError: If the new name collides with another active mess.
        """
        changes = patch.model_dump(exclude_unset=True, exclude_none=True)

        def operation():
            facility = self._owned_facility(session, facility_id, admin)
            mess = find_mess(facility, mess_id)
            if mess is None:
                raise NotFoundError("Mess", mess_id)
            if "name" in changes and name_taken(facility, changes["name"], exclude_mess_id=mess_id):
                raise ConflictError(MESS_CONFLICT, resource="Mess")
            becomes_active = changes.get("is_active") is True and not mess.is_active
            if becomes_active and name_taken(facility, changes.get("name", mess.name), exclude_mess_id=mess_id):
                raise ConflictError(MESS_CONFLICT, resource="Mess")
            for key, value in changes.items():
                setattr(mess, key, value.strip() if key == "name" else value)
            facility.updated_at = utcnow()
            return mess

        mess = run_in_transaction(session, operation, name="update_mess", conflict_message=MESS_CONFLICT)
        logger.info("Mess %s updated (%s)", mess_id, ", ".join(sorted(changes)) or "no changes")
        return mess

    def deactivate_mess(self, session: Session, facility_id: int, mess_id: str, admin=None) -> models.Mess:
        """Mark a mess inactive. Deactivating an inactive mess is a no-op.

        Raises:
            NotFoundError: If the facility or mess does not exist.
        """
        def operation():
            facility = self._owned_facility(session, facility_id, admin)
            mess = find_mess(facility, mess_id)
            if mess is None:
                raise NotFoundError("Mess", mess_id)
            if mess.is_active:
                mess.is_active = False
                facility.updated_at = utcnow()
            return mess

        mess = run_in_transaction(session, operation, name="deactivate_mess")
        logger.info("Mess %s deactivated", mess_id)
        return mess

    # Reads

    def is_mess_name_unique(self, session: Session, facility_id: int, name: str, exclude_mess_id: Optional[str] = None) -> bool:
        facility = self._facilities(session).get_by_id(facility_id)
        if facility is None:
            return False
        return not name_taken(facility, name, exclude_mess_id)

    def list_facilities(self, session: Session) -> List[models.Facility]:
        return self._facilities(session).query(is_active=True).order_by(models.Facility.name).all()

    def get_facility_messes(self, session: Session, facility_name: str) -> List[models.Mess]:
        if not facility_name:
            raise ValidationError("Facility name is required", field="facility")
        facility = self._facilities(session).first(name=facility_name, is_active=True)
        if facility is None:
            raise NotFoundError("Facility", facility_name)
        return [m for m in facility.messes if m.is_active]

    def get_facility_by_mess_name(self, session: Session, mess_name: str) -> Tuple[models.Facility, models.Mess]:
        if not mess_name:
            raise ValidationError("Mess name is required", field="messName")
        return self._facility_with_mess(session, models.Mess.name == mess_name, mess_name)

    def get_facility_by_mess_id(self, session: Session, mess_id: str) -> Tuple[models.Facility, models.Mess]:
        return self._facility_with_mess(session, models.Mess.mess_id == mess_id, mess_id)

    def _facility_with_mess(self, session: Session, criterion, identifier: str):
        mess = (
            session.query(models.Mess)
            .join(models.Facility)
            .filter(criterion, models.Mess.is_active.is_(True), models.Facility.is_active.is_(True))
            .order_by(models.Mess.id)
            .first()
        )
        if mess is None:
            raise NotFoundError("Mess", identifier)
        return mess.facility, mess

    def check_facility_name(self, session: Session, name: str) -> Tuple[bool, str]:
        if not name:
            raise ValidationError("Facility name is required", field="name")
        taken = self._facilities(session).first(name=name) is not None
        return (False, "Facility name already exists") if taken else (True, "Facility name is available")

    def check_mess_name(self, session: Session, facility_name: str, mess_name: str) -> Tuple[bool, str]:
        if not facility_name or not mess_name:
            raise ValidationError("Both facility and mess names are required")
        facility = self._facilities(session).first(name=facility_name)
        if facility is None:
            raise NotFoundError("Facility", facility_name)
        if name_taken(facility, mess_name):
            return False, "Mess name already exists in this facility"
        return True, "Mess name is available"

    def find_active_facility_by_name(self, session: Session, name: str) -> Optional[models.Facility]:
        """Case-insensitive lookup used when admins register a facility by name."""
        return self._facilities(session).first(
            func.lower(models.Facility.name) == name.strip().lower(),
            models.Facility.is_active.is_(True),
        )

    def directory(self, session: Session) -> List[Tuple[models.Facility, List[models.Mess]]]:
        """Active facilities paired with their active messes, sorted by name."""
        entries = []
        for facility in self.list_facilities(session):
            messes = [m for m in facility.messes if m.is_active]
            if messes:
                entries.append((facility, messes))
        return entries


directory_service = DirectoryService()
