"""
Bearer API-key authentication.

Every route except the root health check expects ``Authorization: Bearer
<api key>``. Admin routes expect the separate admin access token instead.
"""

import logging
import secrets
from typing import Callable

from fastapi import HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def _matches(token: str, expected: str | None) -> bool:
    return expected is not None and secrets.compare_digest(token, expected)


class ApiKeyAuth:
    """
    Static bearer-token checks.

    Usage in your service:
        from fastapi import Depends

        auth = ApiKeyAuth(api_key="secret", admin_access_token="admin-secret")

        @app.get("/protected")
        async def protected(_=Depends(auth.require())):
            return {"message": "Access granted"}

    Args:
        api_key: Token accepted on regular routes. None rejects all regular
            calls.
        admin_access_token: Token accepted on admin routes. None rejects all
            admin calls.
    """

    def __init__(self, api_key: str | None = None, admin_access_token: str | None = None):
        self.api_key = api_key
        self.admin_access_token = admin_access_token
        if api_key is None:
            logger.warning("No API key configured; authenticated routes will reject every call")

    def require(self, admin: bool = False) -> Callable:
        """
        Create a FastAPI dependency that validates the bearer token.

        Args:
            admin: Check against the admin access token instead of the API key

        Returns:
            FastAPI dependency function
        """
        async def dependency(
            credentials: HTTPAuthorizationCredentials | None = Security(security),
        ) -> None:
            if credentials is None or credentials.scheme.lower() != "bearer":
                raise HTTPException(status_code=403, detail="Forbidden: Invalid Authorization Header")
            if admin:
                if not _matches(credentials.credentials, self.admin_access_token):
                    raise HTTPException(status_code=403, detail="Forbidden: Invalid Admin Access Token")
                return
            if not _matches(credentials.credentials, self.api_key):
                raise HTTPException(status_code=403, detail="Forbidden: Invalid API Key")

        return dependency
