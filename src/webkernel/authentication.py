"""
=============================================================================
SESSION AUTHENTICATION
=============================================================================

Logs users in by storing their id in the session under
SessionInterface.AUTH_KEY. The Authenticate middleware only checks for that
key; this module is what puts it there.

    LoginController.login()
        │
        ▼
    auth.authenticate(username, password)
        │  repository.find_by_username(username)
        │  verify_password(password, user.get_password())
        ▼
    auth.login(user) → session[AUTH_KEY] = user.get_auth_id()

=============================================================================
PASSWORD HASHES
=============================================================================

Stored as "pbkdf2_sha256$<iterations>$<salt>$<hash>" so the iteration count
can be raised later without invalidating existing hashes:

    hash_password("secret")
    → "pbkdf2_sha256$260000$3c1f...$9a7e..."

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Any, Optional
import hashlib
import hmac
import logging
import secrets

from .http.exceptions import AuthenticationError
from .session import SessionInterface


logger = logging.getLogger(__name__)


HASH_ALGORITHM = "pbkdf2_sha256"
HASH_ITERATIONS = 260_000


def hash_password(password: str, iterations: int = HASH_ITERATIONS, salt: Optional[str] = None) -> str:
    """Hash a password for storage."""
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), iterations)
    return f"{HASH_ALGORITHM}${iterations}${salt}${digest.hex()}"


def verify_password(password: str, encoded: str) -> bool:
    """Check a password against a hash from hash_password(). Malformed hashes never match."""
    try:
        algorithm, iterations, salt, expected = encoded.split("$", 3)
        rounds = int(iterations)
    except ValueError:
        return False
    if algorithm != HASH_ALGORITHM:
        return False

    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), rounds)
    return hmac.compare_digest(digest.hex(), expected)


# =============================================================================
# CONTRACTS
# =============================================================================

class AuthUserInterface(ABC):
    """A user that can log in."""

    @abstractmethod
    def get_auth_id(self) -> Any: ...

    @abstractmethod
    def get_username(self) -> str: ...

    @abstractmethod
    def get_password(self) -> str:
        """The stored password hash."""


class AuthRepositoryInterface(ABC):
    """Where users are looked up; the application's persistence layer implements it."""

    @abstractmethod
    def find_by_username(self, username: str) -> Optional[AuthUserInterface]: ...


class SessionAuthInterface(ABC):

    @abstractmethod
    def authenticate(self, username: str, password: str) -> bool: ...

    @abstractmethod
    def login(self, user: AuthUserInterface) -> None: ...

    @abstractmethod
    def logout(self) -> None: ...

    @abstractmethod
    def get_user(self) -> Optional[AuthUserInterface]: ...


class SessionAuthentication(SessionAuthInterface):
    """
    Username/password authentication backed by the session.

    Bind AuthRepositoryInterface in the container and this class autowires:

        container.add(AuthRepositoryInterface, UserRepository)
        auth = container.get(SessionAuthentication)
    """

    def __init__(self, repository: AuthRepositoryInterface, session: SessionInterface):
        self.repository = repository
        self.session = session
        self._user: Optional[AuthUserInterface] = None

    def authenticate(self, username: str, password: str) -> bool:
        """Log the user in if the credentials match."""
        user = self.repository.find_by_username(username)
        if user is None or not verify_password(password, user.get_password()):
            logger.info("Failed login for %r", username)
            return False

        self.login(user)
        return True

    def login(self, user: AuthUserInterface) -> None:
        self.session.start()
        self.session.regenerate()
        self.session.set(SessionInterface.AUTH_KEY, user.get_auth_id())
        self._user = user
        logger.info("User %r logged in", user.get_username())

    def logout(self) -> None:
        self.session.remove(SessionInterface.AUTH_KEY)
        self._user = None

    def get_user(self) -> Optional[AuthUserInterface]:
        return self._user

    def require_user(self) -> AuthUserInterface:
        """
        The logged-in user.

        Raises:
            AuthenticationError: Nobody logged in through this instance.
        """
        if self._user is None:
            raise AuthenticationError("Authentication required")
        return self._user
