"""
FastAPI dependencies for the identity service and authentication.
"""

from typing import Annotated, Optional, TypeVar

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from fortas.kernel.identity.errors import Outcome
from fortas.kernel.identity.identity_service import IdentityService
from fortas.kernel.identity.profile import UserProfile
from fortas.logging_config import client_id_var

T = TypeVar("T")

CLIENT_ID_HEADER = "X-Client-ID"

# Security scheme
security = HTTPBearer(auto_error=False)


def get_identity_service(request: Request) -> IdentityService:
    """The IdentityService of the kernel built at startup."""
    return request.app.state.kernel.identity


Identity = Annotated[IdentityService, Depends(get_identity_service)]


def get_client_id(request: Request) -> Optional[str]:
    """
    Client context whose current-session pointer a request acts on.

    None when the header is absent; such requests never read or write a
    pointer, so anonymous callers cannot share one.
    """
    client_id = request.headers.get(CLIENT_ID_HEADER) or None
    client_id_var.set(client_id)
    return client_id


ClientId = Annotated[Optional[str], Depends(get_client_id)]


def get_bearer_token(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> Optional[str]:
    """Raw bearer token, if one was sent."""
    return credentials.credentials if credentials else None


BearerToken = Annotated[Optional[str], Depends(get_bearer_token)]


def raise_for_outcome(outcome: Outcome[T]) -> T:
    """Return the outcome's value or raise the matching HTTPException."""
    if outcome.ok:
        return outcome.value  # type: ignore[return-value]
    error = outcome.error
    raise HTTPException(status_code=error.status_code, detail=error.message)


async def get_current_user(token: BearerToken, identity: Identity) -> UserProfile:
    """Get current authenticated user or raise 401."""
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    outcome = await identity.authenticate_token(token)
    if not outcome.ok:
        raise HTTPException(
            status_code=outcome.error.status_code,
            detail=outcome.error.message,
            headers={"WWW-Authenticate": "Bearer"},
        )
    return outcome.value


CurrentUser = Annotated[UserProfile, Depends(get_current_user)]
