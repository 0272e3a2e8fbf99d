from datetime import datetime
from typing import List, Literal, Optional, Union
from uuid import UUID
from pydantic import BaseModel, ConfigDict

from app.models.credit import AccountKind, LedgerTransactionKind

# Référence typée vers un compte de crédits.
# Remplace les identifiants "application" / "Attente" mélangés aux comptes utilisateurs.
class UserAccount(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal[AccountKind.USER] = AccountKind.USER
    user_id: UUID

class PlatformFeePool(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal[AccountKind.PLATFORM] = AccountKind.PLATFORM

class EscrowPool(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal[AccountKind.ESCROW] = AccountKind.ESCROW

AccountRef = Union[UserAccount, PlatformFeePool, EscrowPool]

PLATFORM_FEE_POOL = PlatformFeePool()
ESCROW_POOL = EscrowPool()

# Réponses de l'API
class BalanceOut(BaseModel):
    balance: int
    updated_at: datetime

class PoolsOut(BaseModel):
    platform: int
    escrow: int
    users_total: int
    total: int

class LedgerEntryOut(BaseModel):
    amount: int
    kind: LedgerTransactionKind
    ride_id: Optional[int] = None
    description: Optional[str] = None
    created_at: datetime

class StatementOut(BaseModel):
    balance: int
    entries: List[LedgerEntryOut]

class CreditAdjustment(BaseModel):
    amount: int  # positif = ajout, négatif = retrait
    reason: Optional[str] = None
