# app/core/errors.py
"""
Error taxonomy shared by the identity/billing repositories, the sync
service and the webhook ingress.

Repositories translate library errors (Supabase, httpx, Stripe) into
these classes. Routers do not catch them: the handler registered in
`app.main` renders any ServiceError as {"error": message} with the
class's status code.
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse


class ServiceError(Exception):
    """Base class for every error the service surfaces to callers."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Unauthenticated(ServiceError):
    """No valid session, or the admin credential was rejected."""

    status_code = status.HTTP_401_UNAUTHORIZED


class NotFound(ServiceError):
    """Identity user or billing customer does not exist."""

    status_code = status.HTTP_404_NOT_FOUND


class UpstreamUnavailable(ServiceError):
    """Transient failure talking to the identity or billing provider."""

    status_code = status.HTTP_502_BAD_GATEWAY


class SignatureInvalid(ServiceError):
    """Webhook missing signature headers or failing verification."""

    status_code = status.HTTP_400_BAD_REQUEST


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})
