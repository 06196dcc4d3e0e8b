"""
ASGI entrypoint: expose `app` pour les process managers / déploiements.

- En production, un process manager (ex: gunicorn/uvicorn-workers) importe `clubhouse.asgi:app`.
- Toute la configuration FastAPI est centralisée dans clubhouse.app_setup.factory.
"""

from clubhouse.app import app
