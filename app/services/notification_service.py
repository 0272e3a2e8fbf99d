import logging
import httpx

from app.core.config import settings
from app.core.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

EMAILJS_URL = "https://api.emailjs.com/api/v1.0/email/send"

def send_cancellation_email(to_email: str, to_name: str, trip_date: str,
                            trip_departure: str, trip_arrival: str, refund_amount: int) -> dict:
    """Prévient un passager que son trajet est annulé et qu'il a été remboursé."""
    if not (settings.EMAILJS_SERVICE_ID and settings.EMAILJS_TEMPLATE_ID and settings.EMAILJS_PUBLIC_KEY):
        logger.warning(f"EmailJS non configuré, email d'annulation non envoyé à {to_email}")
        return {"status": "skipped"}

    payload = {
        "service_id": settings.EMAILJS_SERVICE_ID,
        "template_id": settings.EMAILJS_TEMPLATE_ID,
        "user_id": settings.EMAILJS_PUBLIC_KEY,
        "template_params": {
            "to_email": to_email,
            "to_name": to_name,
            "trip_date": trip_date,
            "trip_departure": trip_departure,
            "trip_arrival": trip_arrival,
            "refund_amount": refund_amount,
        },
    }

    try:
        response = httpx.post(EMAILJS_URL, json=payload, timeout=10.0)
    except httpx.HTTPError as e:
        logger.error(f"EmailJS injoignable : {e}")
        raise UpstreamUnavailable("Service d'email indisponible.") from e

    if response.status_code >= 500:
        logger.error(f"Erreur EmailJS ({response.status_code}) : {response.text}")
        raise UpstreamUnavailable("Service d'email indisponible.")
    if response.status_code != 200:
        # Erreur de configuration ou de template : inutile de rejouer
        logger.error(f"Email refusé par EmailJS ({response.status_code}) : {response.text}")
        return {"status": "rejected"}

    logger.info(f"Email d'annulation envoyé à {to_email}")
    return {"status": "sent"}
