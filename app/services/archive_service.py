"""
Miroir historique (Supabase) des trajets, litiges, avis et transactions.

Les lignes sont envoyées au worker Celery une fois la transaction principale
validée. Une panne de l'archive est journalisée mais n'annule jamais une
opération déjà commitée : la base principale reste la seule source de vérité.
"""
import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from app.models.credit import LedgerTransactionKind
from app.models.review import Review
from app.models.ride import Ride
from app.models.validation import Validation
from app.workers.archive_task import archive_record_task

logger = logging.getLogger(__name__)

def _now() -> str:
    return datetime.now(timezone.utc).isoformat()

def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None

def _dispatch(table: str, row: dict):
    try:
        archive_record_task.delay(table, row)
    except Exception as e:
        # Broker injoignable : l'opération est déjà commitée, on ne fait que tracer
        logger.error(f"Archivage impossible ({table}) : {e}")

def archive_transaction(user_id: UUID, amount: int, kind: LedgerTransactionKind,
                        description: str, ride_id: Optional[int] = None):
    # Montant signé du point de vue de l'utilisateur (négatif = crédits sortis de son compte)
    _dispatch("historique_transactions", {
        "utilisateur_id": str(user_id),
        "montant": amount,
        "type": kind.value,
        "description": description,
        "covoiturage_id": str(ride_id) if ride_id is not None else None,
        "date_transaction": _now(),
    })

def archive_ride(ride: Ride, passenger_ids: list):
    _dispatch("historique_covoiturages", {
        "covoiturage_id": str(ride.id),
        "chauffeur_id": str(ride.driver_id),
        "passagers_ids": [str(p) for p in passenger_ids],
        "depart_ville": ride.origin,
        "arrivee_ville": ride.destination,
        "date_depart": _iso(ride.departure_at),
        "date_arrivee": _iso(ride.arrival_at),
        "prix": ride.price,
        "vehicule_plaque": ride.vehicle_plate,
        "ecologique": ride.is_eco,
        "statut": ride.status.value,
    })

def archive_dispute(validation: Validation, resolution: str, employee_id: Optional[UUID] = None):
    _dispatch("historique_litiges", {
        "litige_id": str(validation.id),
        "covoiturage_id": str(validation.ride_id),
        "chauffeur_id": str(validation.driver_id),
        "passager_id": str(validation.passenger_id),
        "raison": validation.dispute_reason,
        "resolution": resolution,
        "date_creation": _iso(validation.disputed_at),
        "date_resolution": _iso(validation.resolved_at),
        "employe_id": str(employee_id) if employee_id else None,
        "date_archivage": _now(),
    })

def review_row(review: Review) -> dict:
    return {
        "avis_id": str(review.id),
        "chauffeur_id": str(review.driver_id),
        "passager_id": str(review.author_id),
        "note": review.rating,
        "commentaire": review.comment,
        "date_creation": _iso(review.created_at),
        "date_archivage": _now(),
    }

def archive_review(review: Review):
    _dispatch("historique_avis", review_row(review))

def archive_review_row(row: dict):
    _dispatch("historique_avis", row)
