from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID
from sqlmodel import Field, SQLModel

class AccountKind(str, Enum):
    USER = "utilisateur"
    PLATFORM = "plateforme"  # frais de service ("application")
    ESCROW = "attente"       # prix des trajets réservés, en attente de validation

class LedgerTransactionKind(str, Enum):
    PUBLICATION = "publication"
    BOOKING = "reservation"
    BOOKING_CANCELLATION = "annulation_reservation"
    RIDE_CANCELLATION = "annulation_trajet"
    TRIP_VALIDATION = "validation_trajet"
    DISPUTE_REFUND = "remboursement_litige"
    ADJUSTMENT = "ajustement"

class CreditAccount(SQLModel, table=True):
    __tablename__ = "credit_accounts"

    id: Optional[int] = Field(default=None, primary_key=True)
    kind: AccountKind = Field(index=True)
    # Vide pour les deux comptes de la plateforme
    user_id: Optional[UUID] = Field(default=None, foreign_key="users.id", unique=True, index=True)

    balance: int = Field(default=0)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class LedgerTransaction(SQLModel, table=True):
    __tablename__ = "ledger_transactions"

    id: Optional[int] = Field(default=None, primary_key=True)
    # Clé d'idempotence : une même opération ne peut être comptabilisée deux fois
    key: str = Field(unique=True, index=True)
    kind: LedgerTransactionKind

    ride_id: Optional[int] = Field(default=None, foreign_key="rides.id", index=True)
    validation_id: Optional[int] = Field(default=None, foreign_key="validations.id")
    actor_id: Optional[UUID] = Field(default=None, foreign_key="users.id")
    description: Optional[str] = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class LedgerEntry(SQLModel, table=True):
    __tablename__ = "ledger_entries"

    id: Optional[int] = Field(default=None, primary_key=True)
    transaction_id: int = Field(foreign_key="ledger_transactions.id", index=True)
    account_id: int = Field(foreign_key="credit_accounts.id", index=True)
    # Positif = crédit, négatif = débit
    amount: int

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
