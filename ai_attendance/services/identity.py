"""Identity Gate: the single owner of the signed-in session.

Wraps the Supabase auth client. Everything else reads the session through
``current_session()`` or a subscription, and only this class writes it.
"""
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

import httpx

from ai_attendance.errors import AuthError, ValidationError
from ai_attendance.schemas import LoginIn, RegisterIn, Session
from ai_attendance.utils.logger import get_logger

logger = get_logger(__name__)

MIN_PASSWORD_LENGTH = 6
DEFAULT_ROLE = "student"

# Provider error codes -> user-facing messages
AUTH_MESSAGES = {
    "email_exists": "This email is already in use",
    "user_already_exists": "This email is already in use",
    "email_address_invalid": "Invalid email address",
    "validation_failed": "Invalid email address",
    "weak_password": "Password is too weak",
    "invalid_credentials": "Invalid email or password",
    "network_failure": "Network error. Please check your connection",
}
GENERIC_AUTH_MESSAGE = "Authentication failed. Please try again."

SessionCallback = Callable[[Optional[Session]], None]


class GuardDecision(str, Enum):
    LOADING = "loading"
    REDIRECT = "redirect"
    ALLOW = "allow"


def map_auth_error(exc: Exception) -> AuthError:
    """Translate a provider exception into an AuthError with a known message."""
    if isinstance(exc, AuthError):
        return exc
    code = getattr(exc, "code", None)
    # The auth client reports network failures as status 0
    if isinstance(exc, (httpx.TransportError, ConnectionError)) or getattr(exc, "status", None) == 0:
        code = "network_failure"
    message = AUTH_MESSAGES.get(code)
    if message is None:
        logger.info(f"Unmapped auth error {code!r}: {exc}")
        message = GENERIC_AUTH_MESSAGE
    return AuthError(message, code=code)


def session_from_auth(user, session=None) -> Optional[Session]:
    """Build a Session from the provider's user (and optional session) objects."""
    if user is None:
        return None
    metadata = getattr(user, "user_metadata", None) or {}
    return Session(
        user_id=str(user.id),
        email=getattr(user, "email", None),
        display_name=metadata.get("display_name") or metadata.get("name"),
        access_token=getattr(session, "access_token", None),
    )


class Subscription:
    def __init__(self, unsubscribe: Callable[[], None]):
        self._unsubscribe = unsubscribe
        self.active = True

    def unsubscribe(self):
        if self.active:
            self.active = False
            self._unsubscribe()


class IdentityGate:
    def __init__(self, client):
        self._client = client
        self._session: Optional[Session] = None
        self._pending = True
        self._listeners: List[SessionCallback] = []
        self._lock = threading.Lock()
        self._provider_subscription = None

    # --- state ---

    @property
    def pending(self) -> bool:
        """True until the first session check with the provider has finished."""
        return self._pending

    def current_session(self) -> Optional[Session]:
        return self._session

    def resolve(self) -> Optional[Session]:
        """Run the initial session check and start following provider auth events."""
        if self._provider_subscription is None:
            try:
                self._provider_subscription = self._client.auth.on_auth_state_change(self._on_provider_event)
            except Exception as e:
                logger.warning(f"Auth state listener unavailable: {e}")
        try:
            provider_session = self._client.auth.get_session()
        except Exception as e:
            logger.error(f"Initial session check failed: {e}")
            provider_session = None
        user = getattr(provider_session, "user", None)
        self._set_session(session_from_auth(user, provider_session))
        self._pending = False
        return self._session

    def subscribe(self, callback: SessionCallback) -> Subscription:
        """Call ``callback`` with the session now and on every later change."""
        with self._lock:
            self._listeners.append(callback)
        if not self._pending:
            callback(self._session)

        def _remove():
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return Subscription(_remove)

    def teardown(self):
        with self._lock:
            self._listeners.clear()
        if self._provider_subscription is not None:
            unsubscribe = getattr(self._provider_subscription, "unsubscribe", None)
            if unsubscribe:
                unsubscribe()
            self._provider_subscription = None

    # --- actions ---

    def sign_in(self, form: LoginIn) -> Session:
        if not form.email.strip() or not form.password:
            raise ValidationError("Please fill in all fields")
        try:
            response = self._client.auth.sign_in_with_password(
                {"email": form.email.strip(), "password": form.password}
            )
        except Exception as e:
            error = map_auth_error(e)
            logger.warning(f"Sign-in failed for {form.email}: {error.code or error.message}")
            raise error from e
        session = session_from_auth(response.user, response.session)
        self._set_session(session)
        logger.info(f"Signed in: {session.user_id}")
        return session

    def sign_up(self, form: RegisterIn) -> Session:
        validate_registration(form)
        try:
            response = self._client.auth.sign_up({
                "email": form.email.strip(),
                "password": form.password,
                "options": {"data": {"display_name": form.name.strip()}},
            })
        except Exception as e:
            error = map_auth_error(e)
            logger.warning(f"Registration failed for {form.email}: {error.code or error.message}")
            raise error from e

        session = session_from_auth(response.user, response.session)
        if session is None:
            raise AuthError("Failed to create account")
        if not session.display_name:
            session = session.model_copy(update={"display_name": form.name.strip()})
        self._save_profile(session, form)
        self._set_session(session)
        logger.info(f"Registered: {session.user_id}")
        return session

    def sign_out(self):
        try:
            self._client.auth.sign_out()
        except Exception as e:
            error = map_auth_error(e)
            logger.error(f"Sign-out failed: {error.message}")
            raise error from e
        self._set_session(None)
        logger.info("Signed out")

    def revoke(self, token: str):
        """Sign out the API session that owns ``token``."""
        try:
            self._client.auth.admin.sign_out(token)
        except Exception as e:
            error = map_auth_error(e)
            logger.error(f"Sign-out failed: {error.message}")
            raise error from e
        logger.info("API session signed out")

    def session_from_token(self, token: str) -> Optional[Session]:
        """Resolve an API bearer token to a Session, or None if the provider rejects it."""
        try:
            response = self._client.auth.get_user(token)
        except Exception as e:
            logger.info(f"Token rejected: {e}")
            return None
        session = session_from_auth(getattr(response, "user", None))
        if session is None:
            return None
        return session.model_copy(update={"access_token": token})

    # --- internals ---

    def _save_profile(self, session: Session, form: RegisterIn):
        profile = {
            "id": session.user_id,
            "name": form.name.strip(),
            "email": form.email.strip(),
            "created_at": datetime.now(timezone.utc).isoformat(),
            "role": DEFAULT_ROLE,
        }
        try:
            self._client.table("users").upsert(profile).execute()
        except Exception as e:
            # The account exists even if the profile write fails.
            logger.error(f"Profile write failed for {session.user_id}: {e}")

    def _on_provider_event(self, event, provider_session):
        user = getattr(provider_session, "user", None)
        self._set_session(session_from_auth(user, provider_session))
        self._pending = False

    def _set_session(self, session: Optional[Session]):
        with self._lock:
            changed = session != self._session
            self._session = session
            listeners = list(self._listeners)
        if changed:
            for listener in listeners:
                listener(session)


def validate_registration(form: RegisterIn):
    if not (form.name.strip() and form.email.strip() and form.password and form.confirm_password):
        raise ValidationError("Please fill in all fields")
    if form.password != form.confirm_password:
        raise ValidationError("Passwords do not match")
    if len(form.password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")


def guard_route(gate: IdentityGate) -> GuardDecision:
    """Neutral loading while the first check runs, then redirect or allow."""
    if gate.pending:
        return GuardDecision.LOADING
    if gate.current_session() is None:
        return GuardDecision.REDIRECT
    return GuardDecision.ALLOW
