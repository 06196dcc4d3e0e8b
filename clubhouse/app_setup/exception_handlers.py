"""
Gestionnaires d'exceptions.
- BookingError (et sous-classes): {"detail", "code", "fields"?} avec le statut porté par l'erreur.
- RequestValidationError: 400 (et non 422) avec le détail par champ.
- HTTPException: body JSON FastAPI standard {"detail"}.
"""
import logging
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from clubhouse.errors import BookingError

logger = logging.getLogger(__name__)

def _field_errors(exc: RequestValidationError):
    fields = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p != "body"]
        fields.append({"field": ".".join(loc), "message": err.get("msg", "invalide")})
    return fields

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(BookingError)
    async def booking_error_handler(request: Request, exc: BookingError):
        if exc.status_code >= 500:
            logger.error("%s %s -> %s %s", request.method, request.url.path, exc.code, exc.message)
        content = {"detail": exc.message, "code": exc.code}
        if exc.fields:
            content["fields"] = exc.fields
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"detail": "Requête invalide", "code": "validation_error", "fields": _field_errors(exc)},
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)
