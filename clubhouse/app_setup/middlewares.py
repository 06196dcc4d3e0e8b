"""
Middlewares transverses de l'API de réservation.
- register_basic_middlewares: CORS (site public), hôtes autorisés, en-têtes X-Forwarded-* des seuls proxies de FORWARDED_ALLOW_IPS.
- register_security_middleware: en-têtes de sécurité sur toutes les réponses JSON.
- register_force_https_middleware: redirige le trafic HTTP vu par le proxy vers HTTPS.
L'ordre compte: le middleware HTTPS est ajouté en dernier pour s'exécuter en premier.
Pas de cookie de session ni de CSRF: le webhook Stripe est authentifié par signature,
les tâches planifiées par CRON_SECRET.
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse
from starlette.middleware.trustedhost import TrustedHostMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from clubhouse.config import ALLOWED_HOSTS, CORS_ORIGINS, COOKIE_SECURE, FORWARDED_ALLOW_IPS

SECURITY_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "no-referrer",
    # Réponses propres à une réservation: jamais mises en cache
    "Cache-Control": "no-store",
}

def register_basic_middlewares(app: FastAPI) -> None:
    wildcard = "*" in CORS_ORIGINS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=not wildcard,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=ALLOWED_HOSTS + ["*"] if wildcard else ALLOWED_HOSTS)
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=FORWARDED_ALLOW_IPS)

def register_security_middleware(app: FastAPI) -> None:
    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        if COOKIE_SECURE:
            response.headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains; preload")
        # La doc Swagger charge ses assets depuis un CDN
        if not request.url.path.startswith("/docs"):
            response.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'")
        return response

def register_force_https_middleware(app: FastAPI) -> None:
    @app.middleware("http")
    async def force_https(request: Request, call_next):
        if request.headers.get("x-forwarded-proto") == "http":
            secure_url = request.url.replace(scheme="https")
            return RedirectResponse(str(secure_url), status_code=301)
        return await call_next(request)
