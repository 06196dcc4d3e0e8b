"""
Taxonomie d'erreurs du cœur réservation/paiement.

Chaque erreur porte un `code` stable (exposé tel quel aux clients) et un statut HTTP;
la traduction en réponse JSON est faite par clubhouse.app_setup.exception_handlers.
"""
from typing import Any, Dict, List, Optional


class BookingError(Exception):
    status_code = 500
    default_code = "error"

    def __init__(self, message: str, code: Optional[str] = None, fields: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.fields = fields or []


class ValidationError(BookingError):
    """Entrée invalide ou incomplète: toujours corrigeable côté client."""
    status_code = 400
    default_code = "validation_error"


class CountMismatchError(ValidationError):
    default_code = "count_mismatch"


class NotFoundError(BookingError):
    status_code = 404
    default_code = "not_found"


class StateConflictError(BookingError):
    """Opération incompatible avec le statut courant de la réservation."""
    status_code = 409
    default_code = "state_conflict"


class InvalidStateError(StateConflictError):
    default_code = "invalid_state"


class AlreadySubmittedError(StateConflictError):
    default_code = "already_submitted"


class ExternalGatewayError(BookingError):
    """Stripe injoignable ou requête refusée."""
    status_code = 502
    default_code = "gateway_error"


class PersistenceError(BookingError):
    status_code = 500
    default_code = "persistence_error"
