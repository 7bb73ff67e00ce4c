"""Bearer token verification against the hosted auth provider."""

from typing import Any, Callable, Dict, Optional

import aiohttp

from bizzin_jobs.errors import AuthTokenError, RemoteHttpError
from bizzin_jobs.plan_store import PlanStore


class AuthProviderClient:
    """HTTP client for the hosted auth provider's user endpoint."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 5.0,
    ):
        """
        Initialize the auth client.

        Args:
            base_url: Base URL of the auth provider (e.g., "https://xyz.supabase.co")
            api_key: Project API key sent in the apikey header
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    async def get_user(self, access_token: str) -> Dict[str, Any]:
        """
        Resolve an access token to the provider's user record.

        Raises:
            AuthTokenError: If the provider rejects the token
            RemoteHttpError: If the provider is unreachable or errors
        """
        url = f"{self.base_url}/auth/v1/user"

        headers = {"Authorization": f"Bearer {access_token}"}
        if self.api_key:
            headers["apikey"] = self.api_key

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            try:
                async with session.get(url, headers=headers) as resp:
                    response_body = await resp.text()

                    if resp.status in (401, 403):
                        raise AuthTokenError("Invalid or expired token")

                    if resp.status >= 400:
                        raise RemoteHttpError(
                            status_code=resp.status,
                            message=f"Failed to verify token: {response_body}",
                            response_body=response_body,
                        )

                    user = await resp.json()
                    if not user or not user.get("id"):
                        raise AuthTokenError("Token did not resolve to a user")
                    return user

            except aiohttp.ClientError as e:
                raise RemoteHttpError(
                    status_code=0,
                    message=f"Network error: {str(e)}",
                ) from e


class AdminVerifier:
    """Checks that a bearer token belongs to a user flagged as admin."""

    def __init__(
        self,
        auth_client: AuthProviderClient,
        plan_store_factory: Callable[[], PlanStore],
    ):
        self.auth_client = auth_client
        self.plan_store_factory = plan_store_factory

    async def verify(self, authorization: Optional[str]) -> Dict[str, Any]:
        """
        Return the caller's user record if they are an admin.

        Raises:
            AuthTokenError: Missing, malformed or rejected token
            PermissionError: Valid token for a non-admin user
        """
        if not authorization or not authorization.startswith("Bearer "):
            raise AuthTokenError("Missing bearer token")

        token = authorization[len("Bearer "):].strip()
        if not token:
            raise AuthTokenError("Missing bearer token")

        user = await self.auth_client.get_user(token)
        if not await self.plan_store_factory().is_admin(user["id"]):
            raise PermissionError(f"User {user['id']} is not an admin")
        return user
