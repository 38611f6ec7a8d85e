"""Credential Vault: cached, encrypted GitHub installation tokens."""
import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.database import to_naive_utc, utcnow
from app.core.exceptions import NotFound, UpstreamFailure
from app.core.security import decrypt_token, encrypt_token, generate_id
from app.models.installation import CachedToken, Installation
from app.services.github_app import GitHubAppClient

logger = logging.getLogger(__name__)


class TokenCache:
    """
    Installation token cache backed by the ``github_access_tokens`` table.

    ``put`` always inserts a new row; ``get`` reads the newest row that is
    still unexpired according to ``clock``. Rows are never updated in place,
    so concurrent writers cannot corrupt each other.
    """

    def __init__(
        self,
        session: AsyncSession,
        clock: Callable[[], datetime] = utcnow,
        key_hex: Optional[str] = None,
    ):
        self._session = session
        self._clock = clock
        self._key_hex = key_hex

    async def get(self, installation_id: str) -> Optional[str]:
        now = self._clock()
        stmt = (
            select(CachedToken)
            .where(CachedToken.installation_id == installation_id, CachedToken.expires_at > now)
            .order_by(CachedToken.expires_at.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        row = result.scalars().first()
        if row is None or row.expires_at <= now:
            return None
        try:
            return decrypt_token(row.token_encrypted, self._key_hex)
        except ValueError:
            # Undecryptable rows (e.g. after a key rotation) are treated as a miss
            logger.warning("Cached token %s for installation %s could not be decrypted", row.id, installation_id)
            return None

    async def put(self, installation_id: str, token: str, expires_at: datetime) -> None:
        self._session.add(
            CachedToken(
                id=generate_id(),
                installation_id=installation_id,
                token_encrypted=encrypt_token(token, self._key_hex),
                expires_at=to_naive_utc(expires_at),
            )
        )
        await self._session.commit()


class CredentialVault:
    def __init__(
        self,
        session: AsyncSession,
        github: GitHubAppClient,
        cache: Optional[TokenCache] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session = session
        self._github = github
        self._clock = clock
        self._cache = cache or TokenCache(session, clock=clock)

    async def get_token(self, installation_id: str) -> str:
        """
        Return a usable access token for an installation (internal id).

        Raises:
            NotFound: the installation row does not exist
            UpstreamFailure: GitHub refused or failed to mint a token
        """
        cached = await self._cache.get(installation_id)
        if cached is not None:
            return cached

        result = await self._session.execute(
            select(Installation.installation_id).where(Installation.id == installation_id)
        )
        provider_installation_id = result.scalars().first()
        if provider_installation_id is None:
            raise NotFound("Installation not found")

        token, expires_at = await self._github.create_installation_token(provider_installation_id)
        expires_at = to_naive_utc(expires_at)
        if expires_at <= self._clock():
            raise UpstreamFailure("GitHub issued an installation token that is already expired")

        await self._cache.put(installation_id, token, expires_at)
        logger.info("Minted new access token for installation %s (expires %s)", installation_id, expires_at)
        return token
