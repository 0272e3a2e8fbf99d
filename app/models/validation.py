from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID
from sqlmodel import Field, SQLModel, UniqueConstraint

class ValidationStatus(str, Enum):
    PENDING = "non validé"   # en attente de la confirmation du passager
    VALIDATED = "validé"     # confirmé par le passager, chauffeur payé
    DISPUTED = "litige"      # contesté, en attente d'un employé
    RESOLVED = "résolu"      # litige tranché en faveur du chauffeur
    REFUNDED = "remboursé"   # litige tranché en faveur du passager

class Validation(SQLModel, table=True):
    __tablename__ = "validations"
    __table_args__ = (UniqueConstraint("ride_id", "passenger_id", name="uq_validation_ride_passenger"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    ride_id: int = Field(foreign_key="rides.id", index=True)
    passenger_id: UUID = Field(foreign_key="users.id", index=True)
    driver_id: UUID = Field(foreign_key="users.id", index=True)

    status: ValidationStatus = Field(default=ValidationStatus.PENDING, index=True)
    dispute_reason: Optional[str] = None
    resolution: Optional[str] = None
    decided_by: Optional[UUID] = Field(default=None, foreign_key="users.id")

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    disputed_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
