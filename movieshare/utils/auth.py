from typing import Optional
from fastapi import Depends, HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from movieshare.services.session_service import AuthProvider, Session, SessionManager, get_auth_provider
from movieshare.utils.notifications import error_detail

bearer_scheme = HTTPBearer(auto_error=False)


async def get_session_manager(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    provider: AuthProvider = Depends(get_auth_provider),
) -> SessionManager:
    """
    FastAPI dependency: the explicit session context for this request.
    A missing or invalid token yields a signed-out manager, not an error.
    """
    if not credentials:
        return SessionManager(provider)

    session = await provider.resolve_token(credentials.credentials)
    return SessionManager(provider, session=session, token=credentials.credentials if session else None)


async def get_current_session(manager: SessionManager = Depends(get_session_manager)) -> Session:
    """FastAPI dependency that requires a signed-in user."""
    if not manager.current:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_detail("Please login to continue"),
        )
    return manager.current
