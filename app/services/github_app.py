"""GitHub App client.

Authenticates as the App with a short-lived RS256 JWT and exchanges it for
installation access tokens. Also wraps the few installation-scoped REST calls
the service needs, and the OAuth code exchange that proves which GitHub
account a user owns. Any non-2xx answer or transport error raises
``UpstreamFailure``.
"""
import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import httpx
from jose import jwt

from app.core.config import settings
from app.core.exceptions import Unauthorized, UpstreamFailure

logger = logging.getLogger(__name__)

GITHUB_ACCEPT = "application/vnd.github+json"
PER_PAGE = 100


def load_private_key(raw: str) -> str:
    """Accept a PEM string (with literal ``\\n`` escapes) or a path to a PEM file."""
    if "BEGIN" in raw and "PRIVATE KEY" in raw:
        return raw.replace("\\n", "\n")
    path = Path(raw.strip().strip('"'))
    if raw and path.exists():
        return path.read_text()
    raise UpstreamFailure("GITHUB_APP_PRIVATE_KEY must be a PEM string or path to a private key file")


def parse_github_timestamp(value: str) -> datetime:
    """Parse GitHub's ``2026-01-19T16:51:53Z`` style timestamps (aware, UTC)."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class GitHubAppClient:
    def __init__(
        self,
        app_id: str,
        private_key: str,
        api_url: str = "https://api.github.com",
        client_id: str = "",
        client_secret: str = "",
        oauth_url: str = "https://github.com",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._app_id = app_id
        self._private_key = private_key
        self._api_url = api_url.rstrip("/")
        self._client_id = client_id
        self._client_secret = client_secret
        self._oauth_url = oauth_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def app_jwt(self) -> str:
        now = int(time.time())
        payload = {"iat": now - 60, "exp": now + 600, "iss": self._app_id}
        return jwt.encode(payload, load_private_key(self._private_key), algorithm="RS256")

    async def _request(
        self, method: str, path: str, auth: Optional[str], accept: str = GITHUB_ACCEPT, **kwargs: Any
    ) -> httpx.Response:
        headers = {"Accept": accept}
        if auth:
            headers["Authorization"] = auth
        async with httpx.AsyncClient(
            base_url=self._api_url, timeout=self._timeout, transport=self._transport
        ) as client:
            try:
                response = await client.request(method, path, headers=headers, **kwargs)
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                logger.error("GitHub %s %s failed with %s", method, path, exc.response.status_code)
                raise UpstreamFailure(f"GitHub API returned {exc.response.status_code} for {path}") from exc
            except httpx.HTTPError as exc:
                logger.error("GitHub %s %s failed: %s", method, path, exc)
                raise UpstreamFailure(f"GitHub API request failed for {path}") from exc
        return response

    async def create_installation_token(self, installation_id: int) -> Tuple[str, datetime]:
        """
        Mint an installation access token.

        Returns:
            (token, expires_at) where expires_at is timezone-aware UTC
        """
        response = await self._request(
            "POST",
            f"/app/installations/{installation_id}/access_tokens",
            auth=f"Bearer {self.app_jwt()}",
        )
        data = response.json()
        token = data.get("token")
        expires_at = data.get("expires_at")
        if not token or not expires_at:
            raise UpstreamFailure("GitHub installation token response missing token or expires_at")
        return token, parse_github_timestamp(expires_at)

    async def list_installation_repositories(self, token: str) -> List[Dict[str, Any]]:
        repositories: List[Dict[str, Any]] = []
        page = 1
        while True:
            response = await self._request(
                "GET",
                "/installation/repositories",
                auth=f"token {token}",
                params={"per_page": PER_PAGE, "page": page},
            )
            batch = response.json().get("repositories", [])
            repositories.extend(batch)
            if len(batch) < PER_PAGE:
                return repositories
            page += 1

    async def get_repository(self, token: str, owner: str, repo: str) -> Dict[str, Any]:
        auth = f"token {token}"
        data = (await self._request("GET", f"/repos/{owner}/{repo}", auth=auth)).json()
        languages = (await self._request("GET", f"/repos/{owner}/{repo}/languages", auth=auth)).json()
        return {
            "id": data.get("id"),
            "full_name": data.get("full_name"),
            "default_branch": data.get("default_branch"),
            "private": data.get("private", True),
            "languages": languages,
            "pushed_at": data.get("pushed_at"),
        }

    async def exchange_oauth_code(self, code: str) -> str:
        """
        Trade an OAuth authorization code for a user access token.

        Raises:
            Unauthorized: GitHub rejected the code
        """
        response = await self._request(
            "POST",
            f"{self._oauth_url}/login/oauth/access_token",
            auth=None,
            accept="application/json",
            json={"client_id": self._client_id, "client_secret": self._client_secret, "code": code},
        )
        data = response.json()
        # GitHub answers 200 with an "error" field for bad or expired codes
        if data.get("error") or not data.get("access_token"):
            logger.warning("GitHub OAuth code exchange refused: %s", data.get("error"))
            raise Unauthorized("GitHub authorization code was rejected")
        return data["access_token"]

    async def get_authenticated_user(self, access_token: str) -> Dict[str, Any]:
        """The GitHub account behind a user access token (``login`` and ``id``)."""
        data = (await self._request("GET", "/user", auth=f"Bearer {access_token}")).json()
        if not data.get("login"):
            raise UpstreamFailure("GitHub user response missing login")
        return {"login": data["login"], "id": data.get("id")}


def get_github_client() -> GitHubAppClient:
    return GitHubAppClient(
        app_id=settings.GITHUB_APP_ID,
        private_key=settings.GITHUB_APP_PRIVATE_KEY,
        api_url=settings.GITHUB_API_URL,
        client_id=settings.GITHUB_CLIENT_ID,
        client_secret=settings.GITHUB_CLIENT_SECRET,
        oauth_url=settings.GITHUB_OAUTH_URL,
    )
