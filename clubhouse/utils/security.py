import secrets
from fastapi import Request, HTTPException

from clubhouse import config

def require_cron_secret(request: Request) -> None:
    """
    Protège les tâches planifiées: Authorization: Bearer <CRON_SECRET>.
    Sans secret configuré, les endpoints cron sont désactivés.
    """
    if not config.CRON_SECRET:
        raise HTTPException(status_code=503, detail="Tâches planifiées non configurées")
    auth_header = request.headers.get("Authorization", "")
    token = auth_header[7:].strip() if auth_header.startswith("Bearer ") else ""
    if not token or not secrets.compare_digest(token, config.CRON_SECRET):
        raise HTTPException(status_code=401, detail="Non autorisé")
