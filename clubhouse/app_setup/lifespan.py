"""
Lifespan FastAPI: initialisation/arrêt des ressources partagées.
- Initialise FastAPILimiter (Redis) avec options de test (fakeredis).
- Variables d'environnement supportées:
  - DISABLE_RATE_LIMIT_FOR_TESTS=1: désactive complètement (tests)
  - USE_FAKE_REDIS_FOR_TESTS=1: utilise fakeredis (tests), un serveur vierge à chaque démarrage
  - RATE_LIMIT_REDIS_URL: URL Redis (défaut redis://127.0.0.1:6379/0)
"""
import os
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi_limiter import FastAPILimiter
from redis import asyncio as aioredis

from clubhouse.config import LOG_LEVEL

try:
    from fakeredis import FakeServer
    from fakeredis.aioredis import FakeRedis  # tests only
except ImportError:
    FakeServer = FakeRedis = None

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Configure le rate limiting.
    - Si Redis est injoignable, le rate limiting est désactivé proprement (les réservations passent).
    - Les logs indiquent l'état effectif (enabled/disabled) pour observabilité.
    """
    logger = logging.getLogger("uvicorn.error")
    logging.getLogger("clubhouse").setLevel(getattr(logging, LOG_LEVEL.upper(), logging.INFO))
    app.state.rate_limit_backend = None

    if os.getenv("DISABLE_RATE_LIMIT_FOR_TESTS") == "1":
        app.state.rate_limit_enabled = False
        logger.info("Rate limiting disabled by DISABLE_RATE_LIMIT_FOR_TESTS")
        yield
        return

    r = None
    try:
        if os.getenv("USE_FAKE_REDIS_FOR_TESTS") == "1":
            if not FakeRedis:
                raise RuntimeError("USE_FAKE_REDIS_FOR_TESTS=1 mais fakeredis n'est pas installé.")
            r = FakeRedis(server=FakeServer(), decode_responses=True)
            app.state.rate_limit_backend = "fakeredis"
        else:
            redis_url = os.getenv("RATE_LIMIT_REDIS_URL", "redis://127.0.0.1:6379/0")
            r = aioredis.from_url(redis_url, encoding="utf-8", decode_responses=True)
            await r.ping()
            app.state.rate_limit_backend = "redis"
        await FastAPILimiter.init(r)
        app.state.rate_limit_enabled = True
        logger.info("Rate limiting enabled backend=%s", app.state.rate_limit_backend)
    except Exception as e:
        app.state.rate_limit_enabled = False
        app.state.rate_limit_backend = None
        FastAPILimiter.redis = None
        logger.warning("Rate limiting disabled due to init error: %s", e)

    try:
        yield
    finally:
        FastAPILimiter.redis = None
        if r is not None:
            await r.aclose()
