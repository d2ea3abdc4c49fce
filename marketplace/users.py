"""
Signup, sign-in and Aadhar (national ID) verification.
"""

from __future__ import annotations

import logging
import re

from marketplace.auth import AuthUser, IdentityProvider
from marketplace.config import get_settings
from marketplace.db import DbClient, UserRecord, utc_now
from marketplace.errors import NotFound, ValidationError
from marketplace.schemas import LoginRequest, SignupRequest, VerifyAadharRequest

logger = logging.getLogger(__name__)

AADHAR_PATTERN = re.compile(r"[0-9]{12}")


def is_institutional_email(email: str, domain: str | None = None) -> bool:
    domain = (domain or get_settings().allowed_email_domain).lower()
    return email.strip().lower().endswith(f"@{domain}")


def signup(
    db: DbClient, identity: IdentityProvider, payload: SignupRequest
) -> UserRecord:
    domain = get_settings().allowed_email_domain
    if not is_institutional_email(payload.email, domain):
        raise ValidationError(f"Only @{domain} email addresses are allowed")

    name = payload.name.strip()
    if not name:
        raise ValidationError("Name is required")

    auth_user = identity.create_user(payload.email.strip(), payload.password, name)
    user = UserRecord(id=auth_user.id, email=auth_user.email, name=auth_user.name)
    db.save_user(user)
    logger.info("Registered user %s", user.id)
    return user


def login(
    db: DbClient, identity: IdentityProvider, payload: LoginRequest
) -> tuple[str, UserRecord]:
    token, auth_user = identity.sign_in(payload.email.strip(), payload.password)
    user = db.get_user(auth_user.id)
    if not user:
        raise NotFound("User not found")
    return token, user


def verify_identity(
    db: DbClient, actor: AuthUser, payload: VerifyAadharRequest
) -> UserRecord:
    number = (payload.aadharNumber or "").strip()
    if not AADHAR_PATTERN.fullmatch(number):
        raise ValidationError("Invalid Aadhar number")

    user = db.get_user(actor.id)
    if not user:
        raise NotFound("User not found")
    # Re-verifying overwrites the stored number; the flag never reverts.
    user.aadhar_verified = True
    user.aadhar_number = number
    user.aadhar_verified_at = utc_now()
    db.save_user(user)
    return user


def get_profile(db: DbClient, actor: AuthUser) -> UserRecord:
    user = db.get_user(actor.id)
    if not user:
        raise NotFound("User not found")
    return user
