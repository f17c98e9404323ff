# animelog/auth.py
"""
One-time-password login and the live session token set.

A token is valid exactly while it sits in the manager's token list; there is
no expiry, so a token lives until logout or process exit.
"""
import base64
import enum
import hashlib
import logging
import secrets
import threading
from typing import List, Optional

import pyotp

from animelog.errors import OtpInvalid

logger = logging.getLogger(__name__)

OTP_DIGITS = 8
OTP_INTERVAL = 30
OTP_VALID_WINDOW = 1
TOKEN_BYTES = 32


class AuthState(enum.Enum):
    AUTHENTICATED = "Authenticated"
    NOT_LOGGED_IN = "NotLoggedIn"


def build_totp(secret: str) -> pyotp.TOTP:
    """TOTP over the raw bytes of the shared secret: 8 digits, 30 s steps, SHA-256."""
    if not secret:
        raise ValueError("an OTP secret is required")
    b32 = base64.b32encode(secret.encode("utf-8")).decode("ascii")
    return pyotp.TOTP(b32, digits=OTP_DIGITS, digest=hashlib.sha256, interval=OTP_INTERVAL,
                      name="animelog", issuer="animelog")


def _short(token: str) -> str:
    return f"{token[:6]}..." if token else "<empty>"


class SessionTokenManager:
    def __init__(self, secret: str, mock_totp: bool = False):
        self._totp = build_totp(secret)
        self._mock_totp = mock_totp
        self._tokens: List[str] = []
        self._lock = threading.Lock()
        if mock_totp:
            logger.warning("OTP bypass is enabled: every code will be accepted")

    def verify_one_time_password(self, code: str, for_time=None) -> bool:
        """Accept codes from the current 30 s step or one step either side."""
        if self._mock_totp:
            return True
        if not isinstance(code, str) or not code:
            return False
        return self._totp.verify(code, for_time=for_time, valid_window=OTP_VALID_WINDOW)

    def issue_token(self) -> str:
        token = secrets.token_hex(TOKEN_BYTES)
        with self._lock:
            self._tokens.append(token)
            live = len(self._tokens)
        logger.info("Issued session token %s (%d live)", _short(token), live)
        return token

    def authenticate(self, token: Optional[str]) -> AuthState:
        if not token:
            return AuthState.NOT_LOGGED_IN
        with self._lock:
            found = token in self._tokens
        if not found:
            logger.info("Rejected unknown session token %s", _short(token))
            return AuthState.NOT_LOGGED_IN
        return AuthState.AUTHENTICATED

    def revoke(self, token: str) -> None:
        """Forget the token; unknown tokens are ignored."""
        with self._lock:
            try:
                self._tokens.remove(token)
            except ValueError:
                return
        logger.info("Revoked session token %s", _short(token))

    def login(self, code: str) -> str:
        if not self.verify_one_time_password(code):
            logger.warning("Login rejected: invalid one-time password")
            raise OtpInvalid()
        return self.issue_token()

    def logout(self, token: str) -> None:
        self.revoke(token)

    def live_token_count(self) -> int:
        with self._lock:
            return len(self._tokens)
