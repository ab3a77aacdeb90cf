"""
FastAPI dependencies for authentication and authorization.
"""

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from .auth import TokenData, verify_token
from .exceptions import AuthenticationError, AuthorizationError
from .permissions import Action, Resource, is_allowed


# HTTP Bearer token scheme
security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> TokenData:
    """
    Get the caller's identity from the bearer token.

    Raises:
        AuthenticationError: If the token is invalid or expired
    """
    token_data = verify_token(credentials.credentials)
    if token_data is None:
        raise AuthenticationError("Could not validate credentials")
    return token_data


def require_permission(resource: Resource, action: Action):
    """
    Dependency factory checking the policy table for the current caller.

    Returns:
        Dependency resolving to the caller's TokenData
    """
    async def checker(current_user: TokenData = Depends(get_current_user)) -> TokenData:
        if not is_allowed(current_user.role, resource, action):
            raise AuthorizationError(
                "Not enough permissions",
                required_permission=f"{resource.value}:{action.value}",
            )
        return current_user

    return checker
