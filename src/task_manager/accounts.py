from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import timedelta
from typing import Optional, Tuple

from .auth import hash_password, issue_token, verify_password
from .errors import AuthError, ValidationError
from .models import UserEntity
from .notifications import Notifier, notify_safely, password_reset_message, reset_link
from .repositories import UserRepository
from .settings import Settings, get_settings
from .utils import utcnow

logger = logging.getLogger(__name__)

_INVALID_RESET = "Invalid or expired reset token"


def _hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class AccountService:
    """
    Registration, login and the password-reset-by-email flow.

    Only the SHA-256 hash of a reset token is stored; the raw token exists
    only in the emailed link.
    """

    def __init__(self, users: UserRepository, notifier: Notifier, settings: Optional[Settings] = None) -> None:
        self.users = users
        self.notifier = notifier
        self.settings = settings or get_settings()

    def register(self, email: str, password: str) -> Tuple[UserEntity, str]:
        """Create the account and return it with a fresh bearer token."""
        user = self.users.create(email, hash_password(password))
        logger.info("User registered id=%s", user["id"])
        return user, issue_token(user["id"])

    def login(self, email: str, password: str) -> Tuple[UserEntity, str]:
        user = self.users.get_by_email(email)
        if user is None or not verify_password(password, user["password_hash"]):
            raise AuthError("Invalid credentials")
        return user, issue_token(user["id"])

    def request_password_reset(self, email: str) -> None:
        """
        Email a reset link if the address belongs to a user. Unknown
        addresses are ignored so the response does not reveal who is
        registered.
        """
        user = self.users.get_by_email(email)
        if user is None:
            logger.info("Password reset requested for unknown email")
            return

        token = secrets.token_hex(32)
        ttl = self.settings.reset_token_ttl_minutes
        self.users.set_reset_token(user["id"], _hash_reset_token(token), utcnow() + timedelta(minutes=ttl))

        link = reset_link(self.settings.client_url, user["email"], token)
        subject, body = password_reset_message(link, ttl)
        notify_safely(self.notifier, user["email"], subject, body)

    def reset_password(self, email: str, token: str, new_password: str) -> None:
        user = self.users.get_by_email(email)
        if user is None or user["reset_token_hash"] is None or user["reset_token_expires_at"] is None:
            raise ValidationError(_INVALID_RESET)

        if user["reset_token_expires_at"] <= utcnow():
            self.users.set_reset_token(user["id"], None, None)
            raise ValidationError(_INVALID_RESET)

        if not hmac.compare_digest(user["reset_token_hash"], _hash_reset_token(token)):
            raise ValidationError(_INVALID_RESET)

        self.users.set_password(user["id"], hash_password(new_password))
        logger.info("Password reset completed id=%s", user["id"])
