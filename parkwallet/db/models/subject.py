"""Subject model (directory records)."""

from sqlalchemy import JSON, Column, String

from parkwallet.db.base import Base
from parkwallet.db.types import UTCDateTime, utcnow


class Subject(Base):
    """A wallet holder known to the directory."""

    __tablename__ = "subjects"

    subject_id = Column(String(64), primary_key=True)
    username = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    # RFID tag presented at the gate
    credential = Column(String(128), nullable=True, unique=True)
    role = Column(String(16), nullable=False, default="user")
    # [{"plate": "B1234XY", "description": "Red sedan"}, ...]
    vehicles = Column(JSON, nullable=False, default=list)
    # Legacy flat list of plate strings, kept until all records are migrated
    vehicle_plates = Column(JSON, nullable=True)
    created_at = Column(UTCDateTime(), default=utcnow, nullable=False)

    def __repr__(self):
        return f"<Subject(subject_id={self.subject_id}, username={self.username})>"
