from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, Field

from app.models.validation import ValidationStatus

class DisputeOutcome(str, Enum):
    DRIVER = "chauffeur"    # le chauffeur est payé
    PASSENGER = "passager"  # le passager est remboursé

class ValidationOut(BaseModel):
    id: int
    ride_id: int
    passenger_id: UUID
    driver_id: UUID
    status: ValidationStatus
    dispute_reason: Optional[str] = None
    resolution: Optional[str] = None
    decided_by: Optional[UUID] = None
    created_at: datetime
    resolved_at: Optional[datetime] = None

# Confirmation du trajet par le passager, avec avis facultatif
class TripConfirmation(BaseModel):
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    comment: Optional[str] = None

class DisputeCreate(BaseModel):
    reason: str = Field(min_length=1)

class DisputeResolution(BaseModel):
    outcome: DisputeOutcome
