import logging
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func
from sqlmodel import Session, select

from app.core.errors import NotFound, ValidationError
from app.db.session import run_in_transaction
from app.models.review import AdminAction, Review
from app.models.user import User
from app.services import archive_service
from app.services.user_service import ensure_staff, log_admin_action

logger = logging.getLogger(__name__)

def list_driver_reviews(db: Session, driver_id: UUID) -> List[Review]:
    statement = select(Review).where(Review.driver_id == driver_id).order_by(Review.created_at.desc())
    return db.exec(statement).all()

def average_rating(db: Session, driver_id: UUID) -> Optional[float]:
    """Moyenne des notes du chauffeur, recalculée à chaque lecture (None sans avis)."""
    value = db.exec(select(func.avg(Review.rating)).where(Review.driver_id == driver_id)).one()
    return float(value) if value is not None else None

def get_review(db: Session, review_id: int) -> Review:
    review = db.get(Review, review_id)
    if not review:
        raise NotFound("Avis introuvable")
    return review

def list_reviews(db: Session, employee: User, month: Optional[str] = None) -> List[Review]:
    """Avis à modérer, filtrés par mois (format AAAA-MM)."""
    ensure_staff(employee)
    statement = select(Review).order_by(Review.created_at.desc())
    if month:
        try:
            start = datetime.strptime(month, "%Y-%m")
        except ValueError as e:
            raise ValidationError("Mois invalide (format attendu : AAAA-MM).") from e
        end = start.replace(year=start.year + 1, month=1) if start.month == 12 else start.replace(month=start.month + 1)
        statement = statement.where(Review.created_at >= start, Review.created_at < end)
    return db.exec(statement).all()

def edit_review(db: Session, employee: User, review_id: int, comment: str, reason: str) -> Review:
    ensure_staff(employee)
    if not (reason or "").strip():
        raise ValidationError("La raison de la modification est obligatoire.")
    review = get_review(db, review_id)
    initial = review.comment

    def work(session: Session):
        review.comment = comment
        review.edited = True
        review.edited_by = employee.id
        review.edit_reason = reason
        review.updated_at = datetime.now(timezone.utc)
        session.add(review)
        log_admin_action(session, employee, "Modification d'un avis", target_user_id=review.author_id,
                         review_id=review.id, details=f"avant : {initial!r} / raison : {reason}")

    run_in_transaction(db, work)
    db.refresh(review)
    logger.info(f"Avis {review.id} modifié par {employee.email}")
    archive_service.archive_review(review)
    return review

def delete_review(db: Session, employee: User, review_id: int):
    ensure_staff(employee)
    review = get_review(db, review_id)
    # Copie prise avant suppression, archivée une fois la suppression commitée
    row = archive_service.review_row(review)

    def work(session: Session):
        log_admin_action(session, employee, "Suppression d'un avis", target_user_id=review.author_id,
                         review_id=review.id, details=review.comment)
        session.delete(review)

    run_in_transaction(db, work)
    logger.info(f"Avis {review_id} supprimé par {employee.email}")
    archive_service.archive_review_row(row)

def list_admin_actions(db: Session, employee: User, limit: int = 100) -> List[AdminAction]:
    ensure_staff(employee)
    statement = select(AdminAction).order_by(AdminAction.created_at.desc()).limit(limit)
    return db.exec(statement).all()
