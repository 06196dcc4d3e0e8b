"""
Accès aux codes promo. Le compteur times_used n'est modifié que par les RPC
claim_promo_code / release_promo_code (mise à jour conditionnelle côté base).
"""
from typing import Any, Dict, Optional
import logging

from postgrest.exceptions import APIError

import clubhouse.infra.supabase_client as supabase_client
from clubhouse.errors import PersistenceError

logger = logging.getLogger(__name__)

def get_promo_by_code(code: str) -> Optional[Dict[str, Any]]:
    # Les codes sont stockés en majuscules: la comparaison est insensible à la casse
    normalized = (code or "").strip().upper()
    if not normalized:
        return None
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("promo_codes")
            .select("*")
            .eq("code", normalized)
            .limit(1)
            .execute()
        )
        return supabase_client.first_row(res)
    except Exception as e:
        logger.exception("promos.repository.get_promo_by_code failed code=%s", normalized)
        raise PersistenceError("Lecture du code promo impossible") from e

def get_promo_by_id(promo_id: str) -> Optional[Dict[str, Any]]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("promo_codes")
            .select("*")
            .eq("id", promo_id)
            .limit(1)
            .execute()
        )
        return supabase_client.first_row(res)
    except APIError as e:
        if supabase_client.is_invalid_input(e):
            return None
        logger.exception("promos.repository.get_promo_by_id failed promo_id=%s", promo_id)
        raise PersistenceError("Lecture du code promo impossible") from e
    except Exception as e:
        logger.exception("promos.repository.get_promo_by_id failed promo_id=%s", promo_id)
        raise PersistenceError("Lecture du code promo impossible") from e

def claim_promo_use(promo_id: str) -> bool:
    """
    times_used = times_used + 1 si actif et sous le plafond; False si épuisé entre-temps.
    """
    try:
        res = (
            supabase_client.get_service_supabase()
            .rpc("claim_promo_code", {"p_promo_id": str(promo_id)})
            .execute()
        )
        data = getattr(res, "data", None)
        if isinstance(data, list):
            data = data[0] if data else False
        return bool(data)
    except Exception as e:
        logger.exception("promos.repository.claim_promo_use failed promo_id=%s", promo_id)
        raise PersistenceError("Utilisation du code promo impossible") from e

def release_promo_use(promo_id: str) -> None:
    try:
        (
            supabase_client.get_service_supabase()
            .rpc("release_promo_code", {"p_promo_id": str(promo_id)})
            .execute()
        )
    except Exception as e:
        logger.exception("promos.repository.release_promo_use failed promo_id=%s", promo_id)
        raise PersistenceError("Restitution du code promo impossible") from e
