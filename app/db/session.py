import logging
from typing import Callable, TypeVar

from sqlalchemy.exc import OperationalError
from sqlmodel import create_engine, Session

from app.core.config import settings
from app.core.errors import Conflict, UpstreamUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Sérialisation, interblocage, verrou non obtenu (PostgreSQL)
CONTENTION_SQLSTATES = {"40001", "40P01", "55P03"}
CONTENTION_MESSAGES = ("database is locked", "database table is locked", "busy")

# SQLite (tests, dev local) : la connexion doit pouvoir changer de thread
connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False, "timeout": 30}

# Création du moteur de connexion
# DB_ECHO=True permet de voir les requêtes SQL dans le terminal (utile pour le debug)
engine = create_engine(settings.DATABASE_URL, echo=settings.DB_ECHO, connect_args=connect_args)

def get_db():
    """
    Fonction de dépendance (Dependency Injection).
    Crée une session DB pour une requête, et la ferme après.
    """
    with Session(engine) as session:
        yield session

def _is_contention(error: OperationalError) -> bool:
    """Vrai si l'erreur vient d'une transaction concurrente, faux si la base est injoignable."""
    if error.connection_invalidated:
        return False
    code = getattr(error.orig, "pgcode", None) or getattr(error.orig, "sqlstate", None)
    if code:
        return code in CONTENTION_SQLSTATES
    message = str(error.orig).lower()
    return any(m in message for m in CONTENTION_MESSAGES)

def run_in_transaction(db: Session, work: Callable[[Session], T], attempts: int = None) -> T:
    """
    Exécute `work(db)` comme une seule transaction : commit si tout passe,
    rollback complet sinon.

    Une erreur transitoire de la base (verrou, conflit de sérialisation)
    relance l'unité entière. Chaque tentative est intégralement annulée avant
    la suivante et porte la même clé d'idempotence, donc une écriture
    financière n'est jamais appliquée deux fois.

    Tentatives épuisées : `Conflict` pour une contention entre transactions,
    `UpstreamUnavailable` si la base est injoignable.
    """
    attempts = attempts or settings.TX_MAX_ATTEMPTS
    for attempt in range(1, attempts + 1):
        try:
            result = work(db)
            db.commit()
            return result
        except OperationalError as e:
            db.rollback()
            logger.warning(f"Erreur transitoire (tentative {attempt}/{attempts}) : {e.orig}")
            if attempt == attempts:
                if _is_contention(e):
                    raise Conflict("La base de données est occupée, veuillez réessayer.") from e
                raise UpstreamUnavailable("Base de données indisponible, veuillez réessayer plus tard.") from e
        except Exception:
            db.rollback()
            raise
