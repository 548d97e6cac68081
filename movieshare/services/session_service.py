"""
Authentication and session state.

AuthProvider is the auth collaborator: it owns user credentials (User documents)
and issues Fernet-encrypted session tokens. SessionManager is the per-request view of
the signed-in identity; components subscribe to it instead of reading a global.
"""
import inspect
import logging
from typing import Any, Callable, List, Optional

from cryptography.fernet import Fernet, InvalidToken
from passlib.context import CryptContext
from pydantic import BaseModel
from pymongo.errors import DuplicateKeyError

from movieshare.config import settings
from movieshare.errors import AuthError, PasswordMismatchError
from movieshare.models.user import User

logger = logging.getLogger("session")

MIN_PASSWORD_LENGTH = 6
EMAIL_IN_USE = "The email address is already in use by another account"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class Session(BaseModel):
    user_id: str
    email: str


SessionListener = Callable[[Optional[Session]], Any]


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        # Unrecognised or malformed stored hash
        return False


class AuthProvider:
    def __init__(self, secret: Optional[str] = None, ttl_seconds: int = settings.SESSION_TTL_SECONDS):
        if not secret:
            # For development only; tokens do not survive a restart
            logger.warning("SESSION_SECRET missing. Using a temporary key.")
            secret = Fernet.generate_key().decode()
        self.fernet = Fernet(secret.encode())
        self.ttl_seconds = ttl_seconds

    def issue_token(self, user: User) -> str:
        payload = f"{user.id}:{user.session_version}"
        return self.fernet.encrypt(payload.encode()).decode()

    async def resolve_token(self, token: str) -> Optional[Session]:
        try:
            payload = self.fernet.decrypt(token.encode(), ttl=self.ttl_seconds).decode()
            user_id, version = payload.rsplit(":", 1)
        except (InvalidToken, ValueError):
            return None

        user = await User.get(user_id)
        if not user or str(user.session_version) != version:
            return None
        return Session(user_id=str(user.id), email=user.email)

    async def register(self, email: str, password: str) -> User:
        email = email.strip().lower()
        if len(password) < MIN_PASSWORD_LENGTH:
            raise AuthError(f"Password should be at least {MIN_PASSWORD_LENGTH} characters")
        if await User.find_one({"email": email}):
            raise AuthError(EMAIL_IN_USE)

        user = User(email=email, password_hash=hash_password(password))
        try:
            await user.insert()
        except DuplicateKeyError:
            # Lost a race with a concurrent registration
            raise AuthError(EMAIL_IN_USE)
        logger.info(f"Registered user {user.id}")
        return user

    async def sign_in(self, email: str, password: str) -> User:
        user = await User.find_one({"email": email.strip().lower()})
        if not user or not verify_password(password, user.password_hash):
            raise AuthError("Invalid email or password")
        return user

    async def sign_out(self, user_id: str) -> None:
        """Invalidate every token issued to the user so far."""
        user = await User.get(user_id)
        if user:
            user.session_version += 1
            await user.save()


class SessionManager:
    """
    Tracks the current identity and notifies subscribers on every transition.
    Listeners are called once with the current identity when they subscribe.
    """

    def __init__(self, provider: AuthProvider, session: Optional[Session] = None, token: Optional[str] = None):
        self.provider = provider
        self.current = session
        self.token = token if session else None
        self._listeners: List[SessionListener] = []

    @property
    def signed_in(self) -> bool:
        return self.current is not None

    async def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)
        await self._notify(listener, self.current)
        return lambda: self._listeners.remove(listener)

    async def _notify(self, listener: SessionListener, session: Optional[Session]):
        result = listener(session)
        if inspect.isawaitable(result):
            await result

    async def _transition(self, session: Optional[Session]):
        self.current = session
        for listener in list(self._listeners):
            await self._notify(listener, session)

    async def sign_in(self, email: str, password: str) -> str:
        user = await self.provider.sign_in(email, password)
        self.token = self.provider.issue_token(user)
        await self._transition(Session(user_id=str(user.id), email=user.email))
        return self.token

    async def register(self, email: str, password: str, confirm_password: str) -> str:
        if password != confirm_password:
            raise PasswordMismatchError()
        user = await self.provider.register(email, password)
        self.token = self.provider.issue_token(user)
        await self._transition(Session(user_id=str(user.id), email=user.email))
        return self.token

    async def sign_out(self) -> None:
        if self.current:
            await self.provider.sign_out(self.current.user_id)
        self.token = None
        await self._transition(None)

    def affordances(self) -> dict:
        return {
            "signedIn": self.signed_in,
            "email": self.current.email if self.current else None,
            "canUpload": self.signed_in,
            "canDownload": self.signed_in,
        }


_provider: Optional[AuthProvider] = None


def get_auth_provider() -> AuthProvider:
    global _provider
    if _provider is None:
        _provider = AuthProvider(settings.SESSION_SECRET)
    return _provider
