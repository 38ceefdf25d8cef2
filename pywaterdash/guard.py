"""Admin-only access to the dashboard.

Every dashboard page runs the same sequence: take the signed-in identity,
read its ``users/{uid}`` document and require ``role == "admin"``. The
guard does that once for all of them.
"""
import logging
from typing import Callable, Optional

from .config import DEFAULT_EMAIL_DOMAIN
from .exceptions import WaterDashAccessDenied, WaterDashAPIError, WaterDashAuthError
from .feed import Subscription
from .models import AuthUser, UserProfile

main_logger = logging.getLogger('waterdash.main')
warning_logger = logging.getLogger('waterdash.warning')

USERS_COLLECTION = "users"
NOT_SIGNED_IN_MESSAGE = "Not signed in."
NO_PROFILE_MESSAGE = "User data not found. Please contact administrator."
NOT_ADMIN_MESSAGE = "Access denied. Only admin users can login."
LOOKUP_FAILED_MESSAGE = "Login failed. Please try again."


class AdminGuard:
    """Role gate shared by every dashboard page."""

    def __init__(self, client, email_domain: str = DEFAULT_EMAIL_DOMAIN) -> None:
        """Initialize the guard.

        Args:
            client: Identity provider and document store (a ``WaterDashClient``)
            email_domain: Domain appended to usernames typed without one
        """
        self.client = client
        self.email_domain = email_domain

    def login_email(self, username: str) -> str:
        """``operator`` becomes ``operator@<email_domain>``; emails pass through."""
        username = username.strip()
        return username if "@" in username else f"{username}@{self.email_domain}"

    async def login(self, username: str, password: str) -> UserProfile:
        """Sign in and require the admin role.

        Raises:
            WaterDashAuthError: bad credentials or provider failure
            WaterDashAccessDenied: no user document, or not an admin
        """
        user = await self.client.sign_in(self.login_email(username), password)
        return await self.check(user)

    async def check(self, user: Optional[AuthUser]) -> UserProfile:
        """Look up the role of ``user``; sign out and raise if not an admin."""
        if user is None:
            raise WaterDashAuthError(NOT_SIGNED_IN_MESSAGE)
        try:
            return await self._profile(user)
        except WaterDashAccessDenied as e:
            warning_logger.warning(f"Denied {user.email}: {e.message}")
            await self.client.sign_out()
            raise

    async def _profile(self, user: AuthUser) -> UserProfile:
        document = await self.client.get_document(USERS_COLLECTION, user.uid)
        if document is None:
            raise WaterDashAccessDenied(NO_PROFILE_MESSAGE)

        profile = UserProfile(
            uid=user.uid,
            name=document.get("name"),
            email=document.get("email") or user.email,
            role=document.get("role"),
        )
        if not profile.is_admin:
            raise WaterDashAccessDenied(NOT_ADMIN_MESSAGE)
        return profile

    async def watch(
        self,
        on_granted: Callable[[UserProfile], None],
        on_denied: Callable[[str], None],
    ) -> Subscription:
        """Report access for the current identity now and after every change.

        ``on_granted`` receives the admin's profile; ``on_denied`` receives
        the reason to show on the login page.
        """
        async def evaluate(user: Optional[AuthUser]) -> None:
            if user is None:
                on_denied(NOT_SIGNED_IN_MESSAGE)
                return
            try:
                profile = await self._profile(user)
            except WaterDashAccessDenied as e:
                on_denied(e.message)
                return
            except WaterDashAPIError as e:
                warning_logger.error(f"Role lookup failed for {user.uid}: {e}")
                on_denied(LOOKUP_FAILED_MESSAGE)
                return
            main_logger.info(f"Admin access granted to {profile.display_name}")
            on_granted(profile)

        subscription = self.client.on_auth_state_changed(evaluate)
        await evaluate(self.client.current_user)
        return subscription
