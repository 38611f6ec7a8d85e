"""User service for business logic"""
import logging
import secrets
import string

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from sqlalchemy.future import select

from app.core.config import settings
from app.core.exceptions import Conflict, Forbidden
from app.core.security import generate_business_token, hash_api_key
from app.models.user import User
from app.schemas.user import GitHubVerifyResponse, UserRegisterRequest, UserRegisterResponse
from app.services.github_app import GitHubAppClient
from app.services.installation_service import InstallationService

logger = logging.getLogger(__name__)

BUSINESS_ID_LENGTH = 12


class UserService:
    @staticmethod
    async def register(session: AsyncSession, api_key: str, data: UserRegisterRequest) -> UserRegisterResponse:
        """
        Create a user if ``api_key`` is the configured registration key.

        Returns a random business_id and business_token. The new user owns no
        installations until it proves a GitHub identity.

        Raises:
            Forbidden: wrong registration key
            Conflict: generated business_id collided
        """
        if not secrets.compare_digest(api_key, settings.REGISTRATION_API_KEY):
            raise Forbidden("Invalid API key for registration.")

        business_id = "".join(secrets.choice(string.ascii_letters + string.digits) for _ in range(BUSINESS_ID_LENGTH))
        business_token = generate_business_token()
        user = User(
            business_id=business_id,
            business_name=data.business_name or business_id,
            api_key=hash_api_key(api_key),
            business_token=business_token,
            is_active=True,
        )
        session.add(user)
        try:
            await session.commit()
        except IntegrityError as e:
            await session.rollback()
            raise Conflict("Business ID already exists") from e

        return UserRegisterResponse(business_id=business_id, business_token=business_token)

    @staticmethod
    async def verify_github_identity(
        session: AsyncSession, user: User, code: str, github: GitHubAppClient
    ) -> GitHubVerifyResponse:
        """
        Bind the user to the GitHub account that authorized ``code``, then
        link that account's unowned installations.

        Raises:
            Unauthorized: GitHub rejected the code
            Conflict: another user already verified this GitHub account
        """
        access_token = await github.exchange_oauth_code(code)
        account = await github.get_authenticated_user(access_token)
        login = account["login"]

        result = await session.execute(select(User.id).where(User.github_login == login, User.id != user.id))
        if result.scalars().first() is not None:
            raise Conflict(f"GitHub account {login} is already linked to another user")

        user.github_login = login
        await session.commit()
        logger.info("User %s verified as GitHub account %s", user.business_id, login)

        linked = await InstallationService.link_installations(session, user)
        return GitHubVerifyResponse(github_login=login, linked_installations=linked)
