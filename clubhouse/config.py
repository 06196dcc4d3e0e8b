# clubhouse.config
from pathlib import Path
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=True)

EMAIL_TEMPLATES_DIR = Path(__file__).resolve().parent / "notifications" / "templates"

"""
Configuration centrale du service de réservation.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (Supabase, Stripe, Resend)
- Paramètres métier: devise, durée de blocage d'une réservation, relances
- Sécurité HTTP (CORS/hosts), secret des tâches planifiées (cron)
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _int_env(name: str, default: int) -> int:
    raw = _clean_env(os.getenv(name, ""))
    try:
        return int(raw) if raw else default
    except ValueError:
        return default

# Supabase: le service n'utilise que la clé service-role (opérations serveur)
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
if SUPABASE_URL.endswith("/"):
    SUPABASE_URL = SUPABASE_URL.rstrip("/")

# Stripe: clé secrète et secret de signature webhook
STRIPE_SECRET_KEY = _clean_env(os.getenv("STRIPE_SECRET_KEY") or "")
STRIPE_WEBHOOK_SECRET = _clean_env(os.getenv("STRIPE_WEBHOOK_SECRET") or "")
CHECKOUT_CURRENCY = _clean_env(os.getenv("CHECKOUT_CURRENCY") or "gbp").lower()

# Site public (pages de succès/annulation du checkout, liens dans les emails)
SITE_URL = _clean_env(
    os.getenv("SITE_URL") or os.getenv("NEXT_PUBLIC_SITE_URL") or os.getenv("BASE_URL") or "http://localhost:3000"
).rstrip("/")
CHECKOUT_SUCCESS_PATH = os.getenv("CHECKOUT_SUCCESS_PATH", "/book/{slug}/success")
CHECKOUT_CANCEL_PATH = os.getenv("CHECKOUT_CANCEL_PATH", "/book/{slug}")

# Réservations: durée de blocage d'un pending (places + promo), relance des fiches enfants
BOOKING_HOLD_MINUTES = _int_env("BOOKING_HOLD_MINUTES", 60)
INCOMPLETE_REMINDER_HOURS = _int_env("INCOMPLETE_REMINDER_HOURS", 48)
SWEEP_BATCH_SIZE = _int_env("SWEEP_BATCH_SIZE", 50)

# Emails transactionnels (Resend)
RESEND_API_KEY = _clean_env(os.getenv("RESEND_API_KEY") or "")
RESEND_FROM_EMAIL = _clean_env(os.getenv("RESEND_FROM_EMAIL") or "bookings@exploretheclubhouse.co.uk")
ADMIN_EMAIL = _clean_env(os.getenv("ADMIN_EMAIL") or "")

# Tâches planifiées: Authorization: Bearer <CRON_SECRET>
CRON_SECRET = _clean_env(os.getenv("CRON_SECRET") or "")

# Cookies/HSTS
COOKIE_SECURE = (os.getenv("COOKIE_SECURE", "false").lower() == "true")

# CORS (dev)
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if h.strip()]

LOG_LEVEL = _clean_env(os.getenv("LOG_LEVEL") or "info").lower()

# Proxies dont les en-têtes X-Forwarded-* sont crus (uvicorn ProxyHeadersMiddleware)
FORWARDED_ALLOW_IPS = [h.strip() for h in os.getenv("FORWARDED_ALLOW_IPS", "127.0.0.1").split(",") if h.strip()]

# Export calendrier (.ics) des jours réservés
CALENDAR_TIMEZONE = _clean_env(os.getenv("CALENDAR_TIMEZONE") or "Europe/London")
CALENDAR_LOCATION = _clean_env(os.getenv("CALENDAR_LOCATION") or "The Clubhouse (address to be confirmed)")
CALENDAR_ORGANIZER_EMAIL = _clean_env(os.getenv("CALENDAR_ORGANIZER_EMAIL") or "hello@exploretheclubhouse.co.uk")
