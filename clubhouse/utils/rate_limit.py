"""
Limitation de débit via fastapi-limiter (Redis partagé entre instances).
FastAPILimiter est initialisé par le lifespan; la clé est l'IP du pair + le chemin.
"""
from math import ceil
from typing import Optional, Dict, Any
from fastapi import Request, Response, HTTPException
from fastapi_limiter import FastAPILimiter
from fastapi_limiter.depends import RateLimiter
from redis.exceptions import RedisError
import logging
import os

logger = logging.getLogger(__name__)

def client_ip(request: Request) -> str:
    # X-Forwarded-For n'est jamais lu ici: ProxyHeadersMiddleware réécrit request.client
    # uniquement pour les proxies de FORWARDED_ALLOW_IPS
    return request.client.host if request.client else "local"

async def _identifier(request: Request) -> str:
    return f"ip:{client_ip(request)}:{request.url.path}"

async def _too_many_requests(request: Request, response: Response, pexpire: int):
    raise HTTPException(
        status_code=429,
        detail="Trop de requêtes, réessayez plus tard",
        headers={"Retry-After": str(ceil(pexpire / 1000))},
    )

def optional_rate_limit(times: int, seconds: int):
    limiter = RateLimiter(times=times, seconds=seconds, identifier=_identifier, callback=_too_many_requests)

    async def _dep(request: Request, response: Response):
        # Respecter le flag global
        if getattr(request.app.state, "rate_limit_enabled", None) is False:
            return
        if FastAPILimiter.redis is None:
            return
        try:
            await limiter(request, response)
        except RedisError as e:
            # Redis indisponible: on laisse passer plutôt que de bloquer les réservations
            logger.warning("rate_limit store error path=%s err=%s", request.url.path, e)
    return _dep

def rate_limit_health_info(request: Request) -> Dict[str, Any]:
    enabled = getattr(request.app.state, "rate_limit_enabled", None)
    backend: Optional[str] = getattr(request.app.state, "rate_limit_backend", None)

    info: Dict[str, Any] = {
        "enabled": (bool(enabled) if enabled is not None else None),
        "ready": FastAPILimiter.redis is not None,
        "backend": backend,
    }

    redis_url = os.getenv("RATE_LIMIT_REDIS_URL")
    if backend == "redis" and redis_url:
        from urllib.parse import urlparse
        p = urlparse(redis_url)
        info["redis"] = {
            "scheme": p.scheme,
            "host": p.hostname,
            "port": p.port,
        }

    return info
