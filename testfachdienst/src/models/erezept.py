"""
Prescription (E-Rezept) models.

Provides both the SQLAlchemy ORM entity and the Pydantic schemas for:
- The persisted prescription with lifecycle metadata
- Create/update payloads shared by REST and STOMP
- API responses

JSON uses camelCase field names; snake_case is accepted on input as well.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from sqlalchemy import BigInteger, DateTime, Integer, String
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# ============================================================================
# SQLAlchemy Base
# ============================================================================


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


class ErezeptStatus(str, Enum):
    """Lifecycle status of a prescription."""

    CREATED = "CREATED"
    SIGNED = "SIGNED"
    DISPENSED = "DISPENSED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Convert to UTC; naive values are taken as UTC (SQLite drops the offset on storage)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ============================================================================
# SQLAlchemy Models
# ============================================================================


class Erezept(Base):
    """
    Electronic prescription with lifecycle metadata.

    ``prescription_id`` is the business key and unique across all rows.
    """
    __tablename__ = "erezept"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True
    )
    medication_name: Mapped[str] = mapped_column(String(128), nullable=False)
    dosage: Mapped[str] = mapped_column(String(256), nullable=False)
    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[ErezeptStatus] = mapped_column(
        SAEnum(ErezeptStatus, native_enum=False, length=16),
        nullable=False,
        default=ErezeptStatus.CREATED
    )
    patient_id: Mapped[str] = mapped_column(String(64), nullable=False)
    practitioner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    prescription_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)

    def __repr__(self) -> str:
        return f"<Erezept(id={self.id}, prescription_id={self.prescription_id}, status={self.status})>"


# ============================================================================
# Pydantic Schemas
# ============================================================================


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErezeptRequest(CamelModel):
    """
    Prescription payload for create and update.

    ``id`` is read-only for REST and ignored there; the STOMP create handler
    rejects an ``id`` that already exists. ``status`` is optional so callers
    can tell "not sent" apart from an explicit value.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "medicationName": "Ibuprofen 400 mg",
                "dosage": "1 tablet, 3x daily after meals",
                "issuedAt": "2025-09-22T10:30:00Z",
                "expiresAt": "2030-12-31T23:59:59Z",
                "status": "CREATED",
                "patientId": "PAT-123456",
                "practitionerId": "PRAC-98765",
                "prescriptionId": "RX-2025-000123",
            }
        }
    )

    id: Optional[int] = Field(None, description="Unique identifier (read-only)")
    medication_name: str = Field(..., max_length=128, description="Medication name")
    dosage: str = Field(..., max_length=256, description="Dosage instructions")
    issued_at: datetime = Field(..., description="When it was issued (ISO-8601)")
    expires_at: Optional[datetime] = Field(None, description="When it expires (ISO-8601)")
    status: Optional[ErezeptStatus] = Field(None, description="Current status")
    patient_id: str = Field(..., max_length=64, description="FHIR/PKV patient identifier")
    practitioner_id: str = Field(..., max_length=64, description="Identifier of prescribing practitioner")
    prescription_id: str = Field(..., max_length=64, description="Prescription identifier")

    @field_validator("medication_name", "dosage", "patient_id", "practitioner_id", "prescription_id")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be blank")
        return v

    @field_validator("issued_at")
    @classmethod
    def validate_past_or_present(cls, v: datetime) -> datetime:
        v = ensure_utc(v)
        if v > datetime.now(timezone.utc):
            raise ValueError("must be a date in the past or in the present")
        return v

    @field_validator("expires_at")
    @classmethod
    def validate_future_or_present(cls, v: Optional[datetime]) -> Optional[datetime]:
        v = ensure_utc(v)
        if v is not None and v < datetime.now(timezone.utc):
            raise ValueError("must be a date in the present or in the future")
        return v

    def to_entity(self) -> Erezept:
        """Build an unsaved entity; a missing status becomes CREATED."""
        return Erezept(
            medication_name=self.medication_name,
            dosage=self.dosage,
            issued_at=self.issued_at,
            expires_at=self.expires_at,
            status=self.status or ErezeptStatus.CREATED,
            patient_id=self.patient_id,
            practitioner_id=self.practitioner_id,
            prescription_id=self.prescription_id,
        )


class ErezeptResponse(CamelModel):
    """A stored prescription."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="Unique identifier", examples=[123])
    medication_name: str
    dosage: str
    issued_at: datetime
    expires_at: Optional[datetime] = None
    status: ErezeptStatus
    patient_id: str
    practitioner_id: str
    prescription_id: str

    @field_validator("issued_at", "expires_at")
    @classmethod
    def attach_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


class DeletedResponse(BaseModel):
    """Confirmation sent after a STOMP delete."""

    id: int
    status: str = "deleted"
