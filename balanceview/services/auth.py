"""
Authentication

The ledger only needs one thing from authentication: a stable user id to
partition storage by. Providers here turn credentials into a UserIdentity.

- IdentityToolkitAuth: email/password accounts via the Identity Toolkit
  REST API (the same accounts the web app has always used)
- StaticAuthProvider: a fixed user id, for local use and tests
"""

from abc import ABC, abstractmethod
from typing import Optional

import requests
import structlog
from pydantic import BaseModel
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1/accounts"

# Identity Toolkit error codes -> messages a user can act on
FRIENDLY_ERRORS = {
    "EMAIL_EXISTS": "An account with this email already exists.",
    "EMAIL_NOT_FOUND": "Invalid email or password.",
    "INVALID_PASSWORD": "Invalid email or password.",
    "INVALID_LOGIN_CREDENTIALS": "Invalid email or password.",
    "USER_DISABLED": "This account has been disabled.",
    "INVALID_EMAIL": "Please enter a valid email address.",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "Too many attempts. Please try again later.",
}


class AuthError(Exception):
    """Sign-in or sign-up failed."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class UserIdentity(BaseModel):
    """The signed-in user."""

    uid: str
    email: Optional[str] = None
    id_token: Optional[str] = None


class AuthProvider(ABC):
    """Turns credentials into a UserIdentity."""

    @abstractmethod
    def sign_in(self, email: str, password: str) -> UserIdentity:
        """
        Sign in an existing user.

        Raises:
            AuthError: If the credentials are rejected
        """
        pass

    @abstractmethod
    def sign_up(self, email: str, password: str) -> UserIdentity:
        """
        Create an account and sign it in.

        Raises:
            AuthError: If the account cannot be created
        """
        pass


class StaticAuthProvider(AuthProvider):
    """Always returns the same user. No credentials are checked."""

    def __init__(self, uid: str, email: Optional[str] = None):
        if not uid:
            raise ValueError("StaticAuthProvider needs a user id")
        self._identity = UserIdentity(uid=uid, email=email)

    def sign_in(self, email: str, password: str) -> UserIdentity:
        return self._identity

    def sign_up(self, email: str, password: str) -> UserIdentity:
        return self._identity


def _friendly_message(code: str) -> str:
    # Codes can carry a suffix, e.g. "WEAK_PASSWORD : Password should be..."
    base = code.split(" ")[0].strip()
    if base == "WEAK_PASSWORD":
        return "Password should be at least 6 characters."
    return FRIENDLY_ERRORS.get(base, "Authentication failed. Please try again.")


class IdentityToolkitAuth(AuthProvider):
    """Email/password authentication over the Identity Toolkit REST API."""

    def __init__(
        self,
        api_key: str,
        timeout_seconds: float = 20.0,
        session: Optional[requests.Session] = None,
    ):
        if not api_key:
            raise ValueError("IdentityToolkitAuth needs an API key")
        self._api_key = api_key
        self._timeout = timeout_seconds
        self._session = session or requests.Session()
        self._logger = structlog.get_logger(__name__)

    def sign_in(self, email: str, password: str) -> UserIdentity:
        return self._call("signInWithPassword", email, password)

    def sign_up(self, email: str, password: str) -> UserIdentity:
        return self._call("signUp", email, password)

    @retry(
        retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        reraise=True,
    )
    def _post(self, action: str, payload: dict) -> requests.Response:
        return self._session.post(
            f"{IDENTITY_TOOLKIT_URL}:{action}",
            params={"key": self._api_key},
            json=payload,
            timeout=self._timeout,
        )

    def _call(self, action: str, email: str, password: str) -> UserIdentity:
        email = (email or "").strip()
        if not email or not password:
            raise AuthError("Email and password are required.", code="MISSING_CREDENTIALS")

        payload = {"email": email, "password": password, "returnSecureToken": True}
        try:
            response = self._post(action, payload)
        except requests.RequestException as e:
            self._logger.error("auth_request_failed", action=action, error=str(e))
            raise AuthError("Could not reach the sign-in service. Please try again.") from e

        if response.status_code != 200:
            try:
                code = response.json().get("error", {}).get("message", "UNKNOWN")
            except ValueError:
                code = "UNKNOWN"
            self._logger.info("auth_rejected", action=action, code=code)
            raise AuthError(_friendly_message(code), code=code)

        data = response.json()
        return UserIdentity(
            uid=data["localId"],
            email=data.get("email", email),
            id_token=data.get("idToken"),
        )
