"""Subject and vehicle ownership lookups."""

import logging
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from parkwallet.db.models import Subject
from parkwallet.errors import NotFound

logger = logging.getLogger(__name__)


def registered_vehicles(subject: Subject) -> Dict[str, str]:
    """Map of plate -> description covering both vehicle record shapes.

    Current records keep ``vehicles`` as ``[{"plate", "description"}]``.
    Older records may still carry ``vehicle_plates``, a flat list of plate
    strings; those plates have no description.
    """
    plates: Dict[str, str] = {}
    for plate in subject.vehicle_plates or []:
        if isinstance(plate, str):
            plates[plate] = ""
    for vehicle in subject.vehicles or []:
        plate = vehicle.get("plate") if isinstance(vehicle, dict) else None
        if plate:
            plates[plate] = vehicle.get("description") or ""
    return plates


class Directory:
    """Read-only view over ``subjects``."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _one(self, statement) -> Optional[Subject]:
        try:
            result = await self.db.execute(statement)
        except SQLAlchemyError:
            await self.db.rollback()
            raise
        return result.scalar_one_or_none()

    async def resolve_by_credential(self, credential: str) -> Subject:
        subject = await self._one(select(Subject).where(Subject.credential == credential).limit(1))
        if subject is None:
            raise NotFound("User not found with the provided RFID")
        return subject

    async def resolve_by_id(self, subject_id: str) -> Subject:
        subject = await self._one(select(Subject).where(Subject.subject_id == subject_id))
        if subject is None:
            raise NotFound(f"User {subject_id} not found")
        return subject

    def is_vehicle_owned_by(self, subject: Subject, vehicle_tag: str) -> bool:
        return vehicle_tag in registered_vehicles(subject)

    def vehicle_description(self, subject: Subject, vehicle_tag: str) -> Optional[str]:
        description = registered_vehicles(subject).get(vehicle_tag)
        return description or None
