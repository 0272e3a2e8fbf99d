from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, status

from app.api.deps import CurrentUser, DbSession
from app.models.user import UserRole
from app.schemas.ledger import BalanceOut, CreditAdjustment, UserAccount
from app.schemas.user import AdminActionOut, RegisterRequest, StatusUpdate, UserOut
from app.services import review_service, user_service
from app.services.ledger import LedgerService

router = APIRouter()

@router.get("/users", response_model=List[UserOut])
def list_users(db: DbSession, current_user: CurrentUser, role: Optional[UserRole] = None):
    return user_service.list_users(db, current_user, role)

@router.put("/users/{user_id}/status", response_model=UserOut)
def set_status(user_id: UUID, body: StatusUpdate, db: DbSession, current_user: CurrentUser):
    """Bloque ou débloque un compte."""
    return user_service.set_user_status(db, current_user, user_id, body.status)

@router.post("/employees", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def create_employee(body: RegisterRequest, db: DbSession, current_user: CurrentUser):
    return user_service.create_employee(db, current_user, body.email, body.password, body.pseudo)

@router.post("/users/{user_id}/credits", response_model=BalanceOut)
def adjust_credits(user_id: UUID, body: CreditAdjustment, db: DbSession, current_user: CurrentUser):
    user_service.adjust_credits(db, current_user, user_id, body.amount, body.reason)
    account = LedgerService(db).account_for(UserAccount(user_id=user_id))
    db.refresh(account)
    return BalanceOut(balance=account.balance, updated_at=account.updated_at)

@router.get("/actions", response_model=List[AdminActionOut])
def list_actions(db: DbSession, current_user: CurrentUser, limit: int = 100):
    return review_service.list_admin_actions(db, current_user, limit)
