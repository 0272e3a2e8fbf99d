"""
Erreurs métier d'EcoRide.

Les services ne lèvent que ces exceptions ; la couche HTTP (app/main.py)
les traduit en réponses JSON avec le code de statut correspondant.
"""


class EcoRideError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def code(self) -> str:
        return type(self).__name__


class ValidationError(EcoRideError):
    """Entrée invalide (format, montant, transition d'état impossible)."""
    status_code = 400


class NotFound(ValidationError):
    status_code = 404


class AuthorizationError(EcoRideError):
    """Rôle insuffisant, compte bloqué ou ressource qui n'appartient pas à l'utilisateur."""
    status_code = 403


class InsufficientFunds(EcoRideError):
    status_code = 402

    def __init__(self, message: str, required: int = 0, available: int = 0):
        super().__init__(message)
        self.required = required
        self.available = available


class Conflict(EcoRideError):
    """Modification concurrente ou opération déjà effectuée."""
    status_code = 409


class SeatUnavailable(Conflict):
    pass


class UpstreamUnavailable(EcoRideError):
    status_code = 503
