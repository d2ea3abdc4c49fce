"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header

from marketplace.auth import (
    AuthUser,
    IdentityProvider,
    InMemoryIdentityProvider,
    JwtIdentityProvider,
    parse_bearer_token,
)
from marketplace.config import get_settings
from marketplace.db import DbClient, InMemoryDbClient, KvDbClient, PostgresDbClient
from marketplace.errors import Unauthorized
from marketplace.kv import SqlKeyValueStore
from marketplace.storage import InMemoryStorageClient, S3StorageClient, StorageClient

_db_client: DbClient | None = None
_storage_client: StorageClient | None = None
_identity_provider: IdentityProvider | None = None


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so state persists across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _db_client = InMemoryDbClient()
    elif settings.database_layout == "kv":
        _db_client = KvDbClient(SqlKeyValueStore(settings.database_url))
    else:
        _db_client = PostgresDbClient(settings.database_url)
    return _db_client


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.s3_bucket:
        _storage_client = InMemoryStorageClient()
    else:
        _storage_client = S3StorageClient(
            bucket=settings.s3_bucket,
            region=settings.s3_region or "",
            endpoint=settings.s3_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
        )
    return _storage_client


def get_identity_provider() -> IdentityProvider:
    global _identity_provider
    if _identity_provider:
        return _identity_provider

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _identity_provider = InMemoryIdentityProvider()
    else:
        _identity_provider = JwtIdentityProvider(
            settings.database_url,
            settings.auth_secret_key or "",
            token_ttl_seconds=settings.access_token_ttl_seconds,
        )
    return _identity_provider


def reset_clients() -> None:
    """Drop the cached clients so the next request rebuilds them from settings."""
    global _db_client, _storage_client, _identity_provider
    _db_client = None
    _storage_client = None
    _identity_provider = None


def get_bearer_token(authorization: Optional[str] = Header(None)) -> str:
    token = parse_bearer_token(authorization)
    if not token:
        raise Unauthorized()
    return token


def get_current_user(
    token: str = Depends(get_bearer_token),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> AuthUser:
    user = identity.get_user(token)
    if not user:
        raise Unauthorized()
    return user
