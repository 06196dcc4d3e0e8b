from typing import Any, Dict, Optional
from postgrest.exceptions import APIError
from supabase import create_client, Client
from clubhouse.config import SUPABASE_URL, SUPABASE_SERVICE_KEY

_service_supabase: Optional[Client] = None

def get_service_supabase() -> Client:
    """
    Client Supabase service-role, partagé par tous les repositories.
    Le cœur réservation/paiement n'agit jamais au nom d'un utilisateur: pas de client anon.
    """
    global _service_supabase
    if not SUPABASE_URL or not SUPABASE_SERVICE_KEY:
        raise RuntimeError("SUPABASE_URL/SUPABASE_SERVICE_KEY manquant pour get_service_supabase()")
    if _service_supabase is None:
        _service_supabase = create_client(SUPABASE_URL, SUPABASE_SERVICE_KEY)
    return _service_supabase

def first_row(res) -> Optional[Dict[str, Any]]:
    data = getattr(res, "data", None)
    if isinstance(data, list):
        return data[0] if data else None
    if isinstance(data, dict):
        return data
    return None

def is_unique_violation(e: APIError) -> bool:
    """Vrai si l'erreur PostgREST correspond à une violation d'unicité (SQLSTATE 23505)."""
    code = getattr(e, "code", None)
    if not code and e.args and isinstance(e.args[0], dict):
        code = e.args[0].get("code")
    return str(code or "") == "23505"

def is_invalid_input(e: APIError) -> bool:
    """Vrai pour SQLSTATE 22P02 (ex: identifiant qui n'est pas un uuid): traité comme introuvable."""
    code = getattr(e, "code", None)
    if not code and e.args and isinstance(e.args[0], dict):
        code = e.args[0].get("code")
    return str(code or "") == "22P02"
