"""
Envoi d'emails transactionnels via l'API REST Resend, rendu jinja2.
Aucune fonction de ce module ne lève: le résultat est un dict {"success": bool, ...}.
"""
import logging
from typing import Any, Dict, List, Union

import httpx
from jinja2 import Environment, FileSystemLoader, select_autoescape

from clubhouse import config

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
FROM_NAME = "Explore the Clubhouse"

_env = Environment(
    loader=FileSystemLoader(str(config.EMAIL_TEMPLATES_DIR)),
    autoescape=select_autoescape(["html"]),
)

def format_price(pence: Any) -> str:
    return f"£{int(pence or 0) / 100:.2f}"

def booking_reference(booking_id: Any) -> str:
    return str(booking_id or "").replace("-", "")[:8].upper()

_env.filters["price"] = format_price
_env.filters["reference"] = booking_reference

def render(template_name: str, **context: Any) -> str:
    return _env.get_template(template_name).render(site_url=config.SITE_URL, **context)

def send_email(to: Union[str, List[str]], subject: str, html: str) -> Dict[str, Any]:
    if not config.RESEND_API_KEY:
        logger.warning("notifications.email.send_email skipped (RESEND_API_KEY manquant) subject=%s", subject)
        return {"success": False, "error": "email_not_configured"}
    recipients = [to] if isinstance(to, str) else list(to)
    try:
        resp = httpx.post(
            RESEND_API_URL,
            headers={"Authorization": f"Bearer {config.RESEND_API_KEY}"},
            json={
                "from": f"{FROM_NAME} <{config.RESEND_FROM_EMAIL}>",
                "to": recipients,
                "subject": subject,
                "html": html,
            },
            timeout=10.0,
        )
    except httpx.HTTPError as e:
        logger.warning("notifications.email.send_email transport error subject=%s err=%s", subject, e)
        return {"success": False, "error": str(e)}
    if resp.status_code >= 400:
        logger.warning("notifications.email.send_email rejected status=%s body=%s", resp.status_code, resp.text[:300])
        return {"success": False, "error": f"http_{resp.status_code}"}
    try:
        message_id = (resp.json() or {}).get("id")
    except ValueError:
        message_id = None
    return {"success": True, "id": message_id}
