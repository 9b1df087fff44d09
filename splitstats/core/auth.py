from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from .settings import Settings, get_settings

# The API has no login endpoint; tokens are provisioned through settings.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


def require_auth_token(
    token: Annotated[str, Depends(oauth2_scheme)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> str:
    """
    Dependency function that requires a Bearer token listed in the settings.

    If no token is provided, OAuth2PasswordBearer raises a 401 Unauthorized
    exception before this runs.
    """
    if not token or token not in settings.tokens:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return token
