"""Shared API dependencies."""

from dataclasses import dataclass
from typing import AsyncGenerator, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from parkwallet.db.session import get_db
from parkwallet.services.parking import ParkingCoordinator
from parkwallet.store.directory import Directory
from parkwallet.store.ledger import Ledger
from parkwallet.store.sessions import SessionStore

ROLE_ADMIN = "admin"
ROLE_USER = "user"


async def get_db_session(db: AsyncSession = Depends(get_db)) -> AsyncGenerator[AsyncSession, None]:
    """Database session for one request."""
    yield db


@dataclass(frozen=True)
class Identity:
    """Caller identity forwarded by the gateway after it verified the token."""

    subject_id: str
    role: str = ROLE_USER

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


async def get_identity(
    x_subject_id: Optional[str] = Header(None),
    x_subject_role: Optional[str] = Header(None),
) -> Identity:
    """Read the verified ``(subject_id, role)`` pair from the gateway headers."""
    if not x_subject_id or not x_subject_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    role = (x_subject_role or ROLE_USER).strip().lower()
    return Identity(subject_id=x_subject_id.strip(), role=role)


async def require_admin(identity: Identity = Depends(get_identity)) -> Identity:
    """Only let admins through."""
    if not identity.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied. Admin only.",
        )
    return identity


def get_ledger(db: AsyncSession = Depends(get_db_session)) -> Ledger:
    return Ledger(db)


def get_directory(db: AsyncSession = Depends(get_db_session)) -> Directory:
    return Directory(db)


def get_coordinator(db: AsyncSession = Depends(get_db_session)) -> ParkingCoordinator:
    return ParkingCoordinator(
        sessions=SessionStore(db),
        ledger=Ledger(db),
        directory=Directory(db),
    )
