"""
Product listings: creation by verified sellers, browsing, and image URLs.

Image URLs are presigned on every read and never persisted.
"""

from __future__ import annotations

import logging
import math
import os
import uuid
from typing import Optional, Union

from marketplace.auth import AuthUser
from marketplace.config import get_settings
from marketplace.db import DbClient, ProductRecord, timestamp_key
from marketplace.errors import Forbidden, NotFound, ValidationError
from marketplace.schemas import CreateProductRequest
from marketplace.storage import StorageClient

logger = logging.getLogger(__name__)


def parse_price(value: Union[float, int, str, None]) -> float:
    if isinstance(value, bool) or value is None:
        raise ValidationError("Price must be a non-negative number")
    try:
        price = float(str(value).strip())
    except ValueError:
        raise ValidationError("Price must be a non-negative number")
    if not math.isfinite(price) or price < 0:
        raise ValidationError("Price must be a non-negative number")
    return price


def resolve_image_url(storage: StorageClient, path: Optional[str]) -> Optional[str]:
    if not path:
        return None
    try:
        return storage.presign_get(
            path, expires_in=get_settings().image_url_ttl_seconds
        )
    except Exception:
        logger.exception("Failed to sign image URL for %s", path)
        return None


def product_view(storage: StorageClient, product: ProductRecord) -> dict:
    view = product.as_dict()
    if product.image_path:
        view["imageUrl"] = resolve_image_url(storage, product.image_path)
    return view


def create_listing(
    db: DbClient,
    storage: StorageClient,
    actor: AuthUser,
    payload: CreateProductRequest,
) -> dict:
    seller = db.get_user(actor.id)
    if not seller or not seller.aadhar_verified:
        raise Forbidden("Aadhar verification required to sell products")

    title = payload.title.strip()
    if not title:
        raise ValidationError("Title is required")

    product = ProductRecord(
        id=uuid.uuid4().hex,
        title=title,
        description=payload.description,
        price=parse_price(payload.price),
        condition=payload.condition,
        image_path=payload.imagePath or None,
        seller_id=seller.id,
        seller_name=seller.name,
        seller_email=seller.email,
    )
    db.save_product(product)
    logger.info("Seller %s listed product %s", seller.id, product.id)
    return product_view(storage, product)


def list_listings(
    db: DbClient, storage: StorageClient, seller_id: Optional[str] = None
) -> list[dict]:
    products = sorted(
        db.list_products(seller_id=seller_id),
        key=lambda p: (timestamp_key(p.created_at), p.id),
        reverse=True,
    )
    return [product_view(storage, product) for product in products]


def get_listing(db: DbClient, storage: StorageClient, product_id: str) -> dict:
    product = db.get_product(product_id)
    if not product:
        raise NotFound("Product not found")
    return product_view(storage, product)


def upload_image(
    storage: StorageClient,
    actor: AuthUser,
    filename: Optional[str],
    content: bytes,
    content_type: Optional[str] = None,
) -> dict:
    if not content:
        raise ValidationError("No file provided")
    _, ext = os.path.splitext(filename or "")
    path = f"{actor.id}/{uuid.uuid4().hex}{ext.lower()}"
    storage.upload_bytes(
        path, content, content_type=content_type or "application/octet-stream"
    )
    return {"path": path, "url": resolve_image_url(storage, path)}
