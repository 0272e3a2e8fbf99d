from typing import List

from fastapi import APIRouter

from app.api.deps import CurrentUser, DbSession
from app.schemas.validation import DisputeCreate, TripConfirmation, ValidationOut
from app.services import settlement_service

router = APIRouter()

@router.get("", response_model=List[ValidationOut])
def my_validations(db: DbSession, current_user: CurrentUser):
    """Trajets terminés en attente de confirmation (ou en litige) pour le passager."""
    return settlement_service.list_pending_validations(db, current_user)

@router.post("/{validation_id}/confirm", response_model=ValidationOut)
def confirm_trip(validation_id: int, body: TripConfirmation, db: DbSession, current_user: CurrentUser):
    return settlement_service.validate_trip(
        db, current_user, validation_id, rating=body.rating, comment=body.comment
    )

@router.post("/{validation_id}/dispute", response_model=ValidationOut)
def open_dispute(validation_id: int, body: DisputeCreate, db: DbSession, current_user: CurrentUser):
    # Aucun crédit ne bouge : le prix reste dans le pool "attente"
    return settlement_service.open_dispute(db, current_user, validation_id, body.reason)
