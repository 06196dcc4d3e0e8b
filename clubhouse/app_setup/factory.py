"""
Factory d'application pour les entrypoints (ex: clubhouse.asgi).
Ordonne les étapes d'initialisation de manière lisible et testable.
"""
from fastapi import FastAPI
from .lifespan import lifespan
from .middlewares import register_basic_middlewares, register_security_middleware, register_force_https_middleware
from .exception_handlers import register_exception_handlers
from .routers import register_routers

def create_app() -> FastAPI:
    """
    Construit l'app FastAPI avec le lifespan et enregistre:
      1) middlewares de base (CORS, TrustedHost, ProxyHeaders) puis en-têtes de sécurité
      2) gestionnaires d'exceptions (taxonomie BookingError, validation 400)
      3) tous les routers (API v1, cron, health)
      4) redirection HTTPS en dernier pour qu'elle s'exécute en premier
    """
    app = FastAPI(title="Clubhouse Bookings API", lifespan=lifespan)
    register_basic_middlewares(app)
    register_security_middleware(app)
    register_exception_handlers(app)
    register_routers(app)
    register_force_https_middleware(app)
    return app
