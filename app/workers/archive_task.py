import logging
from app.core.celery_app import celery_app
from app.core.errors import UpstreamUnavailable
from app.db.archive import get_supabase_client
from app.services.notification_service import send_cancellation_email

logger = logging.getLogger(__name__)

@celery_app.task(acks_late=True, autoretry_for=(UpstreamUnavailable,), retry_backoff=True, max_retries=5)
def archive_record_task(table: str, row: dict):
    """
    Ajoute une ligne dans une table d'historique Supabase.
    L'insertion est rejouée en cas d'indisponibilité : l'historique n'est
    qu'un miroir en écriture seule, jamais la source de vérité.
    """
    client = get_supabase_client()
    if client is None:
        logger.warning(f"Archive non configurée, ligne ignorée ({table})")
        return {"status": "skipped"}

    try:
        client.table(table).insert(row).execute()
    except Exception as e:
        logger.error(f"Erreur Supabase ({table}) : {e}")
        raise UpstreamUnavailable(f"Archive indisponible : {e}") from e

    logger.info(f"Archive : ligne ajoutée dans {table}")
    return {"status": "archived"}

@celery_app.task(acks_late=True, autoretry_for=(UpstreamUnavailable,), retry_backoff=True, max_retries=3)
def send_cancellation_email_task(to_email: str, to_name: str, trip_date: str,
                                 trip_departure: str, trip_arrival: str, refund_amount: int):
    return send_cancellation_email(
        to_email=to_email,
        to_name=to_name,
        trip_date=trip_date,
        trip_departure=trip_departure,
        trip_arrival=trip_arrival,
        refund_amount=refund_amount,
    )
