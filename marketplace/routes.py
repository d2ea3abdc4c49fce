"""
HTTP routes for the marketplace API.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile

from marketplace import listings, messaging, users
from marketplace.auth import AuthUser, IdentityProvider
from marketplace.db import DbClient
from marketplace.dependencies import (
    get_bearer_token,
    get_current_user,
    get_db_client,
    get_identity_provider,
    get_storage_client,
)
from marketplace.schemas import (
    CreateProductRequest,
    CreateProductResponse,
    HealthResponse,
    ListConversationsResponse,
    ListMessagesResponse,
    ListProductsResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    ProductResponse,
    SendMessageRequest,
    SignupRequest,
    SignupResponse,
    StatusResponse,
    UploadImageResponse,
    UserResponse,
    VerifyAadharRequest,
)
from marketplace.storage import StorageClient

router = APIRouter()


def _log_extra(request: Request, **fields) -> None:
    extra = getattr(request.state, "log_extra", None)
    if isinstance(extra, dict):
        extra.update(fields)


@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok")


@router.post("/signup", response_model=SignupResponse)
def signup(
    payload: SignupRequest,
    request: Request,
    db: DbClient = Depends(get_db_client),
    identity: IdentityProvider = Depends(get_identity_provider),
):
    user = users.signup(db, identity, payload)
    _log_extra(request, user_id=user.id)
    return SignupResponse(success=True, user=user.as_dict())


@router.post("/login", response_model=LoginResponse)
def login(
    payload: LoginRequest,
    db: DbClient = Depends(get_db_client),
    identity: IdentityProvider = Depends(get_identity_provider),
):
    token, user = users.login(db, identity, payload)
    return LoginResponse(accessToken=token, user=user.as_dict())


@router.post("/logout", response_model=StatusResponse)
def logout(
    token: str = Depends(get_bearer_token),
    identity: IdentityProvider = Depends(get_identity_provider),
):
    identity.sign_out(token)
    return StatusResponse(success=True)


@router.post("/verify-aadhar", response_model=StatusResponse)
def verify_aadhar(
    payload: VerifyAadharRequest,
    actor: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    users.verify_identity(db, actor, payload)
    return StatusResponse(success=True, message="Aadhar verified successfully")


@router.get("/user", response_model=UserResponse)
def get_user(
    actor: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    return UserResponse(user=users.get_profile(db, actor).as_dict())


@router.post("/upload-image", response_model=UploadImageResponse)
async def upload_image(
    file: UploadFile = File(...),
    actor: AuthUser = Depends(get_current_user),
    storage: StorageClient = Depends(get_storage_client),
):
    content = await file.read()
    result = listings.upload_image(
        storage, actor, file.filename, content, file.content_type
    )
    return UploadImageResponse(success=True, **result)


@router.post("/products", response_model=CreateProductResponse)
def create_product(
    payload: CreateProductRequest,
    request: Request,
    actor: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    product = listings.create_listing(db, storage, actor, payload)
    _log_extra(request, product_id=product["id"])
    return CreateProductResponse(success=True, product=product)


@router.get("/products", response_model=ListProductsResponse)
def list_products(
    seller_id: Optional[str] = Query(None, alias="sellerId"),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    return ListProductsResponse(
        products=listings.list_listings(db, storage, seller_id=seller_id)
    )


@router.get("/products/{product_id}", response_model=ProductResponse)
def get_product(
    product_id: str,
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    return ProductResponse(product=listings.get_listing(db, storage, product_id))


@router.post("/messages/send", response_model=MessageResponse)
def send_message(
    payload: SendMessageRequest,
    request: Request,
    actor: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    message = messaging.send_message(db, actor, payload)
    _log_extra(request, conversation_id=message.conversation_id)
    return MessageResponse(success=True, message=message.as_dict())


@router.get("/conversations", response_model=ListConversationsResponse)
def list_conversations(
    actor: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    return ListConversationsResponse(
        conversations=messaging.list_conversations(db, storage, actor)
    )


@router.get("/messages/{conversation_id}", response_model=ListMessagesResponse)
def list_messages(
    conversation_id: str,
    actor: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    messages = messaging.list_messages(db, actor, conversation_id)
    return ListMessagesResponse(messages=[m.as_dict() for m in messages])
