"""
Identity provider abstraction: credential storage, sign-in and bearer-token
resolution.
"""

from __future__ import annotations

import secrets
import time
import uuid
from dataclasses import dataclass
from typing import Dict, Optional, Protocol

import bcrypt
import jwt
from sqlalchemy import Column, Float, String, create_engine, select
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from marketplace.errors import Unauthorized, ValidationError

TOKEN_ALGORITHM = "HS256"


@dataclass(frozen=True)
class AuthUser:
    id: str
    email: str
    name: str


class IdentityProvider(Protocol):
    """What the API needs from the identity service."""

    def create_user(self, email: str, password: str, name: str) -> AuthUser:
        ...

    def sign_in(self, email: str, password: str) -> tuple[str, AuthUser]:
        ...

    def get_user(self, token: str) -> Optional[AuthUser]:
        ...

    def sign_out(self, token: str) -> None:
        ...


def parse_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(
        password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)
    ).decode("utf-8")


def check_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


def _validate_credentials(email: str, password: str) -> None:
    if not email or not password:
        raise ValidationError("Email and password are required")


class InMemoryIdentityProvider:
    """Test double issuing opaque random tokens."""

    def __init__(self, bcrypt_rounds: int = 4):
        self.bcrypt_rounds = bcrypt_rounds
        self.users: Dict[str, AuthUser] = {}
        self.password_hashes: Dict[str, str] = {}
        self.tokens: Dict[str, str] = {}

    def create_user(self, email: str, password: str, name: str) -> AuthUser:
        _validate_credentials(email, password)
        email = email.lower()
        if email in self.users:
            raise ValidationError(
                "A user with this email address has already been registered"
            )
        user = AuthUser(id=uuid.uuid4().hex, email=email, name=name)
        self.users[email] = user
        self.password_hashes[email] = hash_password(password, self.bcrypt_rounds)
        return user

    def sign_in(self, email: str, password: str) -> tuple[str, AuthUser]:
        email = (email or "").lower()
        user = self.users.get(email)
        if not user or not check_password(password, self.password_hashes[email]):
            raise Unauthorized("Invalid login credentials")
        token = secrets.token_urlsafe(32)
        self.tokens[token] = email
        return token, user

    def get_user(self, token: str) -> Optional[AuthUser]:
        email = self.tokens.get(token)
        return self.users.get(email) if email else None

    def sign_out(self, token: str) -> None:
        self.tokens.pop(token, None)

    def reset(self) -> None:
        self.users.clear()
        self.password_hashes.clear()
        self.tokens.clear()


class JwtIdentityProvider:
    """
    Credentials in a SQLAlchemy table, bcrypt password hashes and HS256 access tokens.
    """

    def __init__(
        self,
        database_url: str,
        secret_key: str,
        token_ttl_seconds: int = 60 * 60 * 24 * 7,
        bcrypt_rounds: int = 12,
    ):
        if not database_url:
            raise ValueError("DATABASE_URL is required for JwtIdentityProvider")
        if not secret_key:
            raise ValueError("AUTH_SECRET_KEY is required for JwtIdentityProvider")
        self.secret_key = secret_key
        self.token_ttl_seconds = token_ttl_seconds
        self.bcrypt_rounds = bcrypt_rounds
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        AuthBase.metadata.create_all(self.engine)

    def _to_auth_user(self, row: "CredentialRow") -> AuthUser:
        return AuthUser(id=row.id, email=row.email, name=row.name)

    def create_user(self, email: str, password: str, name: str) -> AuthUser:
        _validate_credentials(email, password)
        email = email.lower()
        with self.Session() as session:
            existing = session.execute(
                select(CredentialRow).where(CredentialRow.email == email)
            ).scalar_one_or_none()
            if existing:
                raise ValidationError(
                    "A user with this email address has already been registered"
                )
            row = CredentialRow(
                id=uuid.uuid4().hex,
                email=email,
                name=name,
                password_hash=hash_password(password, self.bcrypt_rounds),
                created_at=time.time(),
            )
            session.add(row)
            session.commit()
            return self._to_auth_user(row)

    def sign_in(self, email: str, password: str) -> tuple[str, AuthUser]:
        with self.Session() as session:
            row = session.execute(
                select(CredentialRow).where(CredentialRow.email == (email or "").lower())
            ).scalar_one_or_none()
            if not row or not check_password(password, row.password_hash):
                raise Unauthorized("Invalid login credentials")
            user = self._to_auth_user(row)
        now = int(time.time())
        token = jwt.encode(
            {
                "sub": user.id,
                "email": user.email,
                "jti": uuid.uuid4().hex,
                "iat": now,
                "exp": now + self.token_ttl_seconds,
            },
            self.secret_key,
            algorithm=TOKEN_ALGORITHM,
        )
        return token, user

    def _decode(self, token: str) -> Optional[dict]:
        try:
            return jwt.decode(
                token,
                self.secret_key,
                algorithms=[TOKEN_ALGORITHM],
                options={"require": ["exp", "sub", "jti"]},
            )
        except jwt.InvalidTokenError:
            return None

    def get_user(self, token: str) -> Optional[AuthUser]:
        claims = self._decode(token)
        if not claims:
            return None
        with self.Session() as session:
            if session.get(RevokedTokenRow, claims.get("jti")):
                return None
            row = session.get(CredentialRow, claims.get("sub"))
            return self._to_auth_user(row) if row else None

    def sign_out(self, token: str) -> None:
        claims = self._decode(token)
        if not claims:
            return
        with self.Session() as session:
            if not session.get(RevokedTokenRow, claims["jti"]):
                session.add(
                    RevokedTokenRow(jti=claims["jti"], expires_at=float(claims["exp"]))
                )
                session.commit()


AuthBase = declarative_base()


class CredentialRow(AuthBase):
    __tablename__ = "auth_users"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=False)
    password_hash = Column(String, nullable=False)
    created_at = Column(Float, nullable=False)


class RevokedTokenRow(AuthBase):
    __tablename__ = "auth_revoked_tokens"

    jti = Column(String, primary_key=True)
    expires_at = Column(Float, nullable=False)
