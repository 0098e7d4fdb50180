"""
Dependencies for shared-key authentication and service access.
"""
import secrets
from typing import Optional

from fastapi import Header, HTTPException, Request, status

from filedrop.config import AUTH_SETTINGS
from filedrop.errors import Unauthorized
from filedrop.services.job_service import JobService
from filedrop.utils import get_logger

logger = get_logger(__name__)


def get_job_service(request: Request) -> JobService:
    """
    Job service dependency.
    The service is created in the application lifespan and stored on app.state.

    Raises:
        HTTPException: 503 if the service has not been initialized
    """
    service = getattr(request.app.state, "job_service", None)
    if service is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Job service not available")
    return service


def require_api_key(
    request: Request,
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
) -> None:
    """
    Enforce the shared API key when authentication is enabled.

    Raises:
        Unauthorized: If the key is missing or does not match
    """
    if not AUTH_SETTINGS["enabled"]:
        return

    expected = AUTH_SETTINGS.get("api_key")
    if x_api_key and expected and secrets.compare_digest(str(x_api_key), str(expected)):
        return

    logger.warning(
        "Authentication failed: missing or invalid API key",
        path=request.url.path,
        api_key_prefix=x_api_key[:6] + "..." if x_api_key and len(x_api_key) > 6 else None,
        remote_addr=request.client.host if request.client else "unknown",
    )
    raise Unauthorized("Authentication required. Use X-API-Key header.")


__all__ = ["get_job_service", "require_api_key"]
