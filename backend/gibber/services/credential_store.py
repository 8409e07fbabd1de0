# gibber/services/credential_store.py
"""
Credential Store

Typed access to user documents: lookups, login/logout bookkeeping and
profile updates. Creating a user is a multi-document operation and lives in
the relationship workflow, which calls insert_user() inside its transaction.
"""
import logging
from uuid import UUID

from tortoise import timezone
from tortoise.exceptions import IntegrityError

from gibber.core.errors import DuplicateEmail, NoDocumentUpdate, NotFound, store_errors
from gibber.core.security import hash_password, verify_password
from gibber.models.user import User

logger = logging.getLogger(__name__)


class CredentialStore:
    """Create/find/update user records and verify passwords."""

    async def insert_user(self, first_name: str, last_name: str, email: str, password: str,
                          using_db=None) -> User:
        """
        Insert a new, logged-in user document.

        Args:
            using_db: Transaction connection (the caller owns commit/rollback)

        Raises:
            DuplicateEmail: a user already has this email
            StoreError: any other store failure
        """
        email = email.lower()
        with store_errors(f"creating user {email}"):
            if await User.filter(email=email).using_db(using_db).exists():
                logger.info("user already exists with email %s", email)
                raise DuplicateEmail(f"user already exists with email {email}")
            try:
                user = await User.create(
                    first_name=first_name,
                    last_name=last_name,
                    email=email,
                    password_hash=hash_password(password),
                    logged_in=True,  # a new user is online until the session ends
                    last_login=timezone.now(),
                    using_db=using_db,
                )
            except IntegrityError as exc:
                # Lost a race with another registration of the same email
                raise DuplicateEmail(f"user already exists with email {email}") from exc
        logger.info("user %s created with id %s", email, user.id)
        return user

    async def attach_relationship(self, user_id, invites_id, using_db=None):
        """Stamp the relationship record reference on the user document."""
        with store_errors(f"attaching invites data to user {user_id}"):
            updated = await User.filter(id=user_id).using_db(using_db).update(invites_id=invites_id)
        if updated != 1:
            raise NoDocumentUpdate(f"invites data not attached to user {user_id}")

    async def get_user_by_email(self, email: str) -> User:
        email = email.lower()
        with store_errors(f"fetching user {email}"):
            user = await User.get_or_none(email=email)
        if user is None:
            logger.info("no user found with email: %s", email)
            raise NotFound(f"no user found with email {email}")
        return user

    async def get_user_by_id(self, user_id: str | UUID, using_db=None) -> User:
        with store_errors(f"fetching user {user_id}"):
            user = await User.filter(id=user_id).using_db(using_db).first()
        if user is None:
            logger.info("no user found with id: %s", user_id)
            raise NotFound(f"no user found with id {user_id}")
        return user

    async def get_users(self, user_ids: list[str]) -> list[User]:
        """
        Fetch several users, keeping the order of user_ids.
        Ids without a user document are skipped.
        """
        if not user_ids:
            return []
        with store_errors("fetching users"):
            found = {str(u.id): u for u in await User.filter(id__in=user_ids)}
        return [found[uid] for uid in user_ids if uid in found]

    async def login(self, user: User, password: str) -> User | None:
        """
        Verify the password and mark the user logged in.

        Returns:
            The user document as it was before this login (so the caller can
            show the previous last-login time), or None on a wrong password
        """
        if not verify_password(password, user.password_hash):
            logger.info("user %s entered an incorrect password", user.email)
            return None
        previous = user.last_login
        now = timezone.now()
        with store_errors(f"logging in user {user.email}"):
            updated = await User.filter(id=user.id).update(logged_in=True, last_login=now)
        if updated != 1:
            raise NoDocumentUpdate(f"login not recorded for user {user.email}")
        user.logged_in = True
        user.last_login = previous
        logger.info("user %s successfully logged in", user.email)
        return user

    async def set_logged_in(self, user_id, logged_in: bool):
        with store_errors(f"setting logged_in={logged_in} for user {user_id}"):
            updated = await User.filter(id=user_id).update(logged_in=logged_in)
        if updated != 1:
            raise NoDocumentUpdate(f"logged_in flag not updated for user {user_id}")

    async def update_password(self, user: User, new_password: str):
        password_hash = hash_password(new_password)
        with store_errors(f"updating password for user {user.email}"):
            updated = await User.filter(id=user.id).update(password_hash=password_hash)
        if updated != 1:
            raise NoDocumentUpdate(f"password not updated for user {user.email}")
        user.password_hash = password_hash
        logger.info("password update successful for user %s", user.email)

    async def update_name(self, user: User, first_name: str, last_name: str) -> bool:
        """
        Update the non-blank parts of the user's name.

        Returns:
            False when both parts are blank (nothing to update), True otherwise
        """
        changes = {}
        if first_name:
            changes["first_name"] = first_name
        if last_name:
            changes["last_name"] = last_name
        if not changes:
            logger.info("nothing to update as both first and last name are blank")
            return False
        with store_errors(f"updating name for user {user.email}"):
            updated = await User.filter(id=user.id).update(**changes)
        if updated != 1:
            raise NoDocumentUpdate(f"name not updated for user {user.email}")
        for key, value in changes.items():
            setattr(user, key, value)
        logger.info("name update successful for user %s", user.email)
        return True

    async def verify(self, user: User, password: str) -> bool:
        return verify_password(password, user.password_hash)
