import logging
from typing import Any, Dict

from clubhouse import config
import clubhouse.infra.supabase_client as supabase_client

logger = logging.getLogger(__name__)

def health_supabase_info() -> Dict[str, Any]:
    """Vérifie la configuration Supabase et une lecture minimale sur la table clubs."""
    info: Dict[str, Any] = {
        "url_set": bool(config.SUPABASE_URL),
        "service_key_set": bool(config.SUPABASE_SERVICE_KEY),
        "connect_ok": False,
    }
    try:
        supabase_client.get_service_supabase().table("clubs").select("id").limit(1).execute()
        info["connect_ok"] = True
    except Exception as e:
        logger.warning("health.supabase check failed: %s", e)
        info["error"] = str(e)
    return info
