from fastapi import APIRouter

from app.api.deps import CurrentUser, DbSession
from app.schemas.ledger import (
    ESCROW_POOL,
    PLATFORM_FEE_POOL,
    BalanceOut,
    LedgerEntryOut,
    PoolsOut,
    StatementOut,
    UserAccount,
)
from app.services.ledger import LedgerService
from app.services.user_service import ensure_staff

router = APIRouter()

@router.get("/me", response_model=BalanceOut)
def my_balance(db: DbSession, current_user: CurrentUser):
    account = LedgerService(db).account_for(UserAccount(user_id=current_user.id))
    return BalanceOut(balance=account.balance, updated_at=account.updated_at)

@router.get("/me/statement", response_model=StatementOut)
def my_statement(db: DbSession, current_user: CurrentUser, limit: int = 50):
    """Historique des mouvements du compte, du plus récent au plus ancien."""
    ledger = LedgerService(db)
    account = UserAccount(user_id=current_user.id)
    entries = [
        LedgerEntryOut(
            amount=entry.amount,
            kind=transaction.kind,
            ride_id=transaction.ride_id,
            description=transaction.description,
            created_at=entry.created_at,
        )
        for entry, transaction in ledger.statement(account, limit=limit)
    ]
    return StatementOut(balance=ledger.balance(account), entries=entries)

@router.get("/pools", response_model=PoolsOut)
def pools(db: DbSession, current_user: CurrentUser):
    # Vue employé : la somme de tous les comptes doit rester cohérente
    ensure_staff(current_user)
    ledger = LedgerService(db)
    platform = ledger.balance(PLATFORM_FEE_POOL)
    escrow = ledger.balance(ESCROW_POOL)
    total = ledger.total_supply()
    return PoolsOut(platform=platform, escrow=escrow, users_total=total - platform - escrow, total=total)
