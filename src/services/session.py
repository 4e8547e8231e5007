from __future__ import annotations

import base64
import json
from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, List, Optional

import api.endpoints as endpoints
from api.client import ApiClient
from api.errors import ApiRequestError, ValidationError
from db.database import LocalStore
from db.models import AuthSession, User
from db.storage import AUTH_KEY
from utils.logger import get_logger

_logger = get_logger(__name__)

IdentityListener = Callable[[Optional[AuthSession]], Awaitable[None]]

EXPIRY_WARNING_WINDOW = timedelta(hours=24)


def decode_jwt_expiry(token: str) -> Optional[datetime]:
    """
    Read the `exp` claim without verifying the signature. Only used to warn
    about an upcoming expiry; there is no refresh flow.
    """
    try:
        payload_b64 = token.split(".")[1]
        payload_b64 += "=" * (-len(payload_b64) % 4)
        payload = json.loads(base64.urlsafe_b64decode(payload_b64))
        exp = payload.get("exp")
    except (IndexError, ValueError, AttributeError):
        return None
    if not isinstance(exp, (int, float)):
        return None
    return datetime.fromtimestamp(exp, tz=timezone.utc)


PLACEHOLDER_PHONE = "0000000000"


def display_phone(phone: str) -> str:
    """Phone number as shown in forms; the placeholder number reads as empty."""
    digits = phone.strip().removeprefix("+91").strip()
    return "" if digits == PLACEHOLDER_PHONE else digits


def profile_changes(name: str, phone: str, street: str) -> dict:
    name, phone, street = name.strip(), phone.strip(), street.strip()
    if not name:
        raise ValidationError("Name is required.", field="name")
    if phone and not (len(phone) == 10 and phone.isdigit()):
        raise ValidationError("Please enter a valid 10-digit phone number.", field="phone")
    changes = {"name": name, "phone": phone}
    if street:
        changes["address"] = {"street": street}
    return changes


def _session_from_payload(payload) -> AuthSession:
    if not isinstance(payload, dict):
        raise ApiRequestError("Unexpected response from server")
    token = payload.get("token")
    user = payload.get("user")
    if not token or not isinstance(user, dict):
        raise ApiRequestError("Unexpected response from server")
    session = AuthSession(token=token, user=User.from_api(user))
    if not session.is_valid:
        raise ApiRequestError("Server returned an incomplete user profile")
    return session


def _server_message(result, default: str) -> str:
    body = result.data
    if isinstance(body, dict) and isinstance(body.get("message"), str) and body["message"]:
        return body["message"]
    return default


class SessionService:
    """
    Owns the signed-in identity. The persisted copy under `customerAuth` is
    the source of truth for the bearer token; `current` mirrors it in memory.
    """

    def __init__(self, store: LocalStore, api: Optional[ApiClient] = None) -> None:
        self.store = store
        self.api = api
        self.current: Optional[AuthSession] = None
        self._listeners: List[IdentityListener] = []

    @property
    def is_authenticated(self) -> bool:
        return self.current is not None

    @property
    def user(self) -> Optional[User]:
        return self.current.user if self.current else None

    def add_listener(self, listener: IdentityListener) -> None:
        self._listeners.append(listener)

    async def _set_current(self, session: Optional[AuthSession]) -> None:
        previous_id = self.current.user.id if self.current else None
        self.current = session
        new_id = session.user.id if session else None
        if previous_id != new_id:
            for listener in self._listeners:
                await listener(session)

    async def token(self) -> Optional[str]:
        data = await self.store.get(AUTH_KEY)
        if isinstance(data, dict) and isinstance(data.get("token"), str):
            return data["token"]
        return None

    async def restore(self, now: Optional[datetime] = None) -> Optional[AuthSession]:
        """Load the persisted session at startup, discarding anything malformed."""
        data = await self.store.get(AUTH_KEY)
        if data is None:
            return None
        session = AuthSession.from_dict(data)
        if session is None:
            _logger.warning("Persisted session is malformed, clearing it")
            await self.store.remove(AUTH_KEY)
            return None

        expiry = decode_jwt_expiry(session.token)
        now = now or datetime.now(timezone.utc)
        if expiry is not None and expiry - now <= EXPIRY_WARNING_WINDOW:
            _logger.warning(f"Session token for {session.user.email} expires at {expiry.isoformat()}")

        await self._set_current(session)
        _logger.info(f"Session restored for {session.user.email}")
        return session

    async def establish(self, session: AuthSession) -> AuthSession:
        await self.store.set(AUTH_KEY, session.to_dict())
        await self._set_current(session)
        _logger.info(f"Signed in as {session.user.email}")
        return session

    async def login(self, email: str, password: str) -> AuthSession:
        email, password = email.strip(), password.strip()
        if not email or not password:
            raise ValidationError("Email and password are required.")
        result = await self.api.call(endpoints.login, email, password)
        result.raise_for_error()
        return await self.establish(_session_from_payload(result.payload))

    async def google_login(self, credential: str) -> AuthSession:
        result = await self.api.call(endpoints.google_login, credential)
        result.raise_for_error()
        return await self.establish(_session_from_payload(result.payload))

    async def signup(self, name: str, email: str, password: str, phone: str = "") -> Optional[AuthSession]:
        """
        Register a customer. Returns the new session when the server signs the
        user straight in, or None when email verification comes first.
        """
        name, email = name.strip(), email.strip()
        if not name or not email or not password:
            raise ValidationError("Make sure all inputs are filled.")
        if "@" not in email:
            raise ValidationError("Please enter a valid email address.", field="email")
        if len(password) < 6:
            raise ValidationError("Password must be at least 6 characters long.", field="password")

        result = await self.api.call(endpoints.signup, name, email, password, phone)
        result.raise_for_error()
        payload = result.payload
        if isinstance(payload, dict) and payload.get("token"):
            return await self.establish(_session_from_payload(payload))
        return None

    async def update_profile(self, **fields) -> User:
        if self.current is None:
            raise ApiRequestError("Not signed in", status=401, kind="auth")
        result = await self.api.call(endpoints.update_profile, fields)
        result.raise_for_error()
        payload = result.payload
        user_data = payload.get("user", payload) if isinstance(payload, dict) else {}
        user = User.from_api({**asdict(self.current.user), **user_data})
        await self.establish(AuthSession(token=self.current.token, user=user))
        return user

    async def verify_email(self, token: str, email: str) -> str:
        result = await self.api.call(endpoints.verify_email, token.strip(), email.strip())
        result.raise_for_error()
        payload = result.payload
        if isinstance(payload, dict) and payload.get("token"):
            await self.establish(_session_from_payload(payload))
        return _server_message(result, "Email verified successfully.")

    async def forgot_password(self, email: str) -> str:
        email = email.strip()
        if "@" not in email:
            raise ValidationError("Please enter a valid email address.", field="email")
        result = await self.api.call(endpoints.forgot_password, email)
        result.raise_for_error()
        return _server_message(result, "If the email is registered, a reset code has been sent.")

    async def reset_password(self, email: str, otp: str, new_password: str) -> str:
        if not email.strip() or not otp.strip():
            raise ValidationError("Email and reset code are required.")
        if len(new_password) < 6:
            raise ValidationError("Password must be at least 6 characters long.", field="password")
        result = await self.api.call(endpoints.reset_password, email.strip(), otp.strip(), new_password)
        result.raise_for_error()
        return _server_message(result, "Password reset successfully. Please log in.")

    async def change_password(self, current_password: str, new_password: str) -> str:
        if len(new_password) < 6:
            raise ValidationError("Password must be at least 6 characters long.", field="password")
        if current_password == new_password:
            raise ValidationError("New password must differ from the current one.", field="password")
        result = await self.api.call(endpoints.change_password, current_password, new_password)
        result.raise_for_error()
        return _server_message(result, "Password changed.")

    async def refresh_profile(self) -> Optional[User]:
        if self.current is None:
            return None
        result = await self.api.call(endpoints.get_profile)
        if not result.success:
            _logger.warning(f"Could not refresh profile: {result.message}")
            return self.current.user
        payload = result.payload
        user_data = payload.get("user", payload) if isinstance(payload, dict) else {}
        user = User.from_api({**asdict(self.current.user), **user_data})
        await self.establish(AuthSession(token=self.current.token, user=user))
        return user

    async def logout(self) -> None:
        await self.store.remove(AUTH_KEY)
        await self._set_current(None)
        _logger.info("Signed out")

    async def handle_unauthorized(self) -> None:
        """ApiClient hook for 401 responses."""
        if self.current is not None or await self.store.has(AUTH_KEY):
            await self.logout()
