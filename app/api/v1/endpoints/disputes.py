from typing import List

from fastapi import APIRouter

from app.api.deps import CurrentUser, DbSession
from app.schemas.validation import DisputeResolution, ValidationOut
from app.services import settlement_service

router = APIRouter()

@router.get("", response_model=List[ValidationOut])
def list_disputes(db: DbSession, current_user: CurrentUser):
    return settlement_service.list_disputes(db, current_user)

@router.post("/{validation_id}/resolve", response_model=ValidationOut)
def resolve_dispute(validation_id: int, body: DisputeResolution, db: DbSession, current_user: CurrentUser):
    """
    Décision d'un employé :
    - "chauffeur" : le prix est versé au chauffeur
    - "passager" : le passager est remboursé, avec un crédit de compensation
    """
    return settlement_service.resolve_dispute(db, current_user, validation_id, body.outcome)
