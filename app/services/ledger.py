"""
Grand livre des crédits EcoRide.

Chaque solde (utilisateur, pool de frais "plateforme", pool "attente")
n'est modifié que par un UPDATE conditionnel exécuté par la base :

    UPDATE credit_accounts SET balance = balance - :amount
    WHERE id = :id AND balance >= :amount

Aucune lecture-calcul-écriture côté Python, donc pas de mise à jour perdue
quand deux réservations touchent le même compte. Chaque mouvement est
journalisé dans `ledger_entries` sous une `LedgerTransaction` dont la clé
est unique.

Le service ne fait jamais de commit : l'appelant regroupe les mouvements
d'une opération dans une seule transaction (voir `run_in_transaction`).
"""
import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from app.core.errors import Conflict, InsufficientFunds, NotFound, ValidationError
from app.models.credit import (
    AccountKind,
    CreditAccount,
    LedgerEntry,
    LedgerTransaction,
    LedgerTransactionKind,
)
from app.schemas.ledger import AccountRef, UserAccount

logger = logging.getLogger(__name__)

def _check_amount(amount: int):
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError(f"Montant invalide : {amount!r} (entier strictement positif attendu).")

def _describe(ref: AccountRef) -> str:
    if isinstance(ref, UserAccount):
        return f"utilisateur {ref.user_id}"
    return ref.kind.value

class LedgerService:

    def __init__(self, db: Session):
        self.db = db
        self.transaction: Optional[LedgerTransaction] = None

    # --- COMPTES ---
    def _account_statement(self, ref: AccountRef):
        statement = select(CreditAccount).where(CreditAccount.kind == ref.kind)
        if isinstance(ref, UserAccount):
            statement = statement.where(CreditAccount.user_id == ref.user_id)
        return statement

    def account_for(self, ref: AccountRef) -> CreditAccount:
        account = self.db.exec(self._account_statement(ref)).first()
        if not account:
            raise NotFound(f"Compte de crédits introuvable ({_describe(ref)}).")
        return account

    def balance(self, ref: AccountRef) -> int:
        """Lit le solde directement en base (jamais depuis un objet en cache)."""
        account = self.account_for(ref)
        return self.db.exec(
            select(CreditAccount.balance).where(CreditAccount.id == account.id)
        ).one()

    def open_user_account(self, user_id: UUID) -> CreditAccount:
        account = CreditAccount(kind=AccountKind.USER, user_id=user_id, balance=0)
        self.db.add(account)
        self.db.flush()
        return account

    def statement(self, ref: AccountRef, limit: int = 50):
        """Derniers mouvements du compte, avec l'opération qui les a produits."""
        account = self.account_for(ref)
        statement = (
            select(LedgerEntry, LedgerTransaction)
            .join(LedgerTransaction, LedgerEntry.transaction_id == LedgerTransaction.id)
            .where(LedgerEntry.account_id == account.id)
            .order_by(LedgerEntry.id.desc())
            .limit(limit)
        )
        return self.db.exec(statement).all()

    def total_supply(self) -> int:
        """Somme de tous les soldes : utilisateurs + plateforme + attente."""
        return self.db.exec(select(func.coalesce(func.sum(CreditAccount.balance), 0))).one()

    # --- TRANSACTIONS ---
    def begin(
        self,
        kind: LedgerTransactionKind,
        key: str,
        ride_id: Optional[int] = None,
        validation_id: Optional[int] = None,
        actor_id: Optional[UUID] = None,
        description: Optional[str] = None,
    ) -> LedgerTransaction:
        """
        Ouvre l'écriture comptable d'une opération. La clé est unique :
        une opération déjà comptabilisée lève Conflict.
        """
        transaction = LedgerTransaction(
            key=key,
            kind=kind,
            ride_id=ride_id,
            validation_id=validation_id,
            actor_id=actor_id,
            description=description,
        )
        self.db.add(transaction)
        try:
            self.db.flush()
        except IntegrityError as e:
            raise Conflict(f"Opération déjà enregistrée ({key}).") from e
        self.transaction = transaction
        return transaction

    def _require_transaction(self):
        if self.transaction is None:
            raise RuntimeError("Aucune transaction ouverte : appeler begin() avant de mouvementer un compte.")

    def _record(self, account: CreditAccount, amount: int):
        self.db.add(LedgerEntry(
            transaction_id=self.transaction.id,
            account_id=account.id,
            amount=amount,
        ))

    # --- MOUVEMENTS ---
    def debit(self, ref: AccountRef, amount: int):
        self._require_transaction()
        _check_amount(amount)
        account = self.account_for(ref)
        result = self.db.exec(
            update(CreditAccount)
            .where(CreditAccount.id == account.id, CreditAccount.balance >= amount)
            .values(balance=CreditAccount.balance - amount, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            available = self.balance(ref)
            logger.warning(f"Débit refusé ({_describe(ref)}) : {amount} demandés, {available} disponibles")
            raise InsufficientFunds(
                f"Solde insuffisant : {amount} crédits nécessaires, {available} disponibles.",
                required=amount,
                available=available,
            )
        self._record(account, -amount)

    def credit(self, ref: AccountRef, amount: int):
        self._require_transaction()
        _check_amount(amount)
        account = self.account_for(ref)
        self.db.exec(
            update(CreditAccount)
            .where(CreditAccount.id == account.id)
            .values(balance=CreditAccount.balance + amount, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        self._record(account, amount)

    def transfer(self, source: AccountRef, target: AccountRef, amount: int):
        self.debit(source, amount)
        self.credit(target, amount)

def ensure_pool_accounts(db: Session):
    """Crée les comptes "plateforme" et "attente" s'ils n'existent pas encore."""
    for kind in (AccountKind.PLATFORM, AccountKind.ESCROW):
        existing = db.exec(select(CreditAccount).where(CreditAccount.kind == kind)).first()
        if not existing:
            db.add(CreditAccount(kind=kind, balance=0))
            logger.info(f"Compte '{kind.value}' créé")
    db.commit()
