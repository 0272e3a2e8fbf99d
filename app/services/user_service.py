import logging
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID, uuid4

from sqlmodel import Session, select

from app.core.config import settings
from app.core.errors import AuthorizationError, Conflict, NotFound, ValidationError
from app.core.security import hash_password, verify_password
from app.db.session import run_in_transaction
from app.models.credit import LedgerTransactionKind
from app.models.review import AdminAction
from app.models.user import RIDE_ROLES, User, UserRole, UserStatus
from app.schemas.ledger import UserAccount
from app.services import archive_service
from app.services.ledger import LedgerService

logger = logging.getLogger(__name__)

# --- CONTRÔLES D'ACCÈS ---
def ensure_active(user: User):
    if not user.is_active:
        raise AuthorizationError("Votre compte est bloqué.")

def ensure_staff(user: User):
    ensure_active(user)
    if not user.is_staff:
        raise AuthorizationError("Action réservée aux employés.")

def ensure_admin(user: User):
    ensure_active(user)
    if user.role != UserRole.ADMIN:
        raise AuthorizationError("Action réservée aux administrateurs.")

def ensure_ride_role(user: User, ride_role: str):
    ensure_active(user)
    if not user.has_ride_role(ride_role):
        raise AuthorizationError(f"Le rôle '{ride_role}' est nécessaire pour cette action.")

def log_admin_action(db: Session, actor: User, action: str, target_user_id: Optional[UUID] = None,
                     review_id: Optional[int] = None, details: Optional[str] = None):
    """Ajoute une ligne au journal de modération (dans la transaction en cours)."""
    db.add(AdminAction(
        actor_id=actor.id,
        action=action,
        target_user_id=target_user_id,
        review_id=review_id,
        details=details,
    ))

def get_user(db: Session, user_id: UUID) -> User:
    user = db.get(User, user_id)
    if not user:
        raise NotFound("Utilisateur introuvable")
    return user

# --- INSCRIPTION / CONNEXION ---
def register_user(db: Session, email: str, password: str, pseudo: str,
                  role: UserRole = UserRole.USER, roles: Optional[List[str]] = None,
                  actor: Optional[User] = None) -> User:
    """
    Crée le compte et son compte de crédits dans la même transaction.
    Les utilisateurs reçoivent les crédits de bienvenue, pas le personnel.
    Un compte créé par un administrateur (`actor`) est journalisé dans cette
    même transaction.
    """
    email = (email or "").strip().lower()
    pseudo = (pseudo or "").strip()
    if not pseudo:
        raise ValidationError("Le pseudo est obligatoire.")
    if len(password or "") < 8:
        raise ValidationError("Le mot de passe doit contenir au moins 8 caractères.")

    if db.exec(select(User).where(User.email == email)).first():
        raise Conflict("Un compte existe déjà avec cet email.")

    def work(session: Session) -> User:
        user = User(
            email=email,
            hashed_password=hash_password(password),
            pseudo=pseudo,
            role=role,
            roles=list(roles) if roles is not None else ["passager"],
        )
        session.add(user)
        session.flush()

        ledger = LedgerService(session)
        ledger.open_user_account(user.id)
        if role == UserRole.USER and settings.SIGNUP_CREDITS > 0:
            ledger.begin(
                LedgerTransactionKind.ADJUSTMENT,
                key=f"bienvenue:{user.id}",
                actor_id=user.id,
                description="Crédits de bienvenue",
            )
            ledger.credit(UserAccount(user_id=user.id), settings.SIGNUP_CREDITS)
        if actor is not None:
            log_admin_action(session, actor, "Création d'un employé", target_user_id=user.id)
        return user

    user = run_in_transaction(db, work)
    db.refresh(user)
    logger.info(f"Nouvel utilisateur {user.email} ({user.role.value})")
    return user

def authenticate(db: Session, email: str, password: str) -> User:
    email = (email or "").strip().lower()
    user = db.exec(select(User).where(User.email == email)).first()
    if not user or not verify_password(password, user.hashed_password):
        raise AuthorizationError("Email ou mot de passe incorrect.")
    ensure_active(user)
    return user

# --- PROFIL ---
def set_ride_roles(db: Session, user: User, roles: List[str]) -> User:
    ensure_active(user)
    unknown = [r for r in roles if r not in RIDE_ROLES]
    if unknown:
        raise ValidationError(f"Rôle inconnu : {', '.join(unknown)}")
    if not roles:
        raise ValidationError("Au moins un rôle (chauffeur ou passager) est nécessaire.")

    user.roles = sorted(set(roles))
    user.updated_at = datetime.now(timezone.utc)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user

# --- ADMINISTRATION ---
def set_user_status(db: Session, admin: User, user_id: UUID, status: UserStatus) -> User:
    ensure_admin(admin)
    user = get_user(db, user_id)
    if user.id == admin.id:
        raise ValidationError("Vous ne pouvez pas modifier le statut de votre propre compte.")

    def work(session: Session) -> User:
        user.status = status
        user.updated_at = datetime.now(timezone.utc)
        session.add(user)
        action = "Blocage du compte" if status == UserStatus.BLOCKED else "Déblocage du compte"
        log_admin_action(session, admin, action, target_user_id=user.id)
        return user

    run_in_transaction(db, work)
    db.refresh(user)
    logger.info(f"Statut de {user.email} -> {status.value} (par {admin.email})")
    return user

def create_employee(db: Session, admin: User, email: str, password: str, pseudo: str) -> User:
    ensure_admin(admin)
    return register_user(db, email, password, pseudo, role=UserRole.EMPLOYEE, roles=[], actor=admin)

def adjust_credits(db: Session, admin: User, user_id: UUID, amount: int, reason: Optional[str] = None) -> int:
    """
    Ajout (montant positif) ou retrait (négatif) manuel de crédits.
    Le solde ne peut jamais devenir négatif.
    """
    ensure_admin(admin)
    if amount == 0:
        raise ValidationError("Le montant doit être différent de zéro.")
    user = get_user(db, user_id)
    account = UserAccount(user_id=user.id)
    label = f"{'Ajout' if amount > 0 else 'Retrait'} de {abs(amount)} crédits"

    def work(session: Session) -> int:
        ledger = LedgerService(session)
        ledger.begin(
            LedgerTransactionKind.ADJUSTMENT,
            key=f"ajustement:{uuid4()}",
            actor_id=admin.id,
            description=reason or label,
        )
        if amount > 0:
            ledger.credit(account, amount)
        else:
            ledger.debit(account, -amount)
        log_admin_action(session, admin, label, target_user_id=user.id, details=reason)
        return ledger.balance(account)

    balance = run_in_transaction(db, work)
    logger.info(f"{label} pour {user.email} (par {admin.email}), nouveau solde {balance}")
    archive_service.archive_transaction(user.id, amount, LedgerTransactionKind.ADJUSTMENT, reason or label)
    return balance

def list_users(db: Session, admin: User, role: Optional[UserRole] = None) -> List[User]:
    ensure_admin(admin)
    statement = select(User).order_by(User.created_at)
    if role is not None:
        statement = statement.where(User.role == role)
    return db.exec(statement).all()
