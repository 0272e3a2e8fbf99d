"""Client Supabase pour l'archive historique (tables historique_*)."""
import logging
from typing import Optional

from app.core.config import settings

logger = logging.getLogger(__name__)

_supabase_client: Optional[object] = None

def get_supabase_client():
    """
    Retourne le client Supabase, ou None si l'archive n'est pas configurée.
    """
    global _supabase_client

    if _supabase_client is None:
        if not settings.SUPABASE_URL or not settings.SUPABASE_KEY:
            return None

        from supabase import create_client

        try:
            _supabase_client = create_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)
            logger.info("Client Supabase initialisé")
        except Exception as e:
            logger.error(f"Impossible d'initialiser le client Supabase : {e}")
            raise

    return _supabase_client
