"""
Pydantic schemas for the marketplace API.

Field names follow the camelCase JSON the web client sends and receives.
"""

from __future__ import annotations

from typing import Literal, Optional, Union

from pydantic import BaseModel, Field, StrictFloat, StrictInt

Condition = Literal["brand-new", "like-new", "good", "fair", "poor"]


class SignupRequest(BaseModel):
    email: str = Field(..., max_length=320)
    password: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)


class LoginRequest(BaseModel):
    email: str
    password: str


class VerifyAadharRequest(BaseModel):
    aadharNumber: str


class CreateProductRequest(BaseModel):
    title: str = Field(..., max_length=200)
    description: Optional[str] = Field(default=None, max_length=4096)
    price: Union[StrictInt, StrictFloat, str]
    condition: Condition
    imagePath: Optional[str] = None


class SendMessageRequest(BaseModel):
    productId: str
    receiverId: str
    message: str = Field(..., max_length=4096)


class User(BaseModel):
    id: str
    email: str
    name: str
    aadharVerified: bool
    aadharNumber: Optional[str] = None
    createdAt: str
    aadharVerifiedAt: Optional[str] = None


class PublicUser(BaseModel):
    id: str
    name: str
    email: str


class Product(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    price: float
    condition: str
    imagePath: Optional[str] = None
    imageUrl: Optional[str] = None
    sellerId: str
    sellerName: str
    sellerEmail: str
    status: str
    createdAt: str


class Message(BaseModel):
    id: str
    conversationId: str
    productId: str
    senderId: str
    senderName: str
    receiverId: str
    message: str
    createdAt: str


class Conversation(BaseModel):
    id: str
    participants: list[str]
    productId: str
    lastMessage: str
    lastMessageAt: str
    product: Optional[Product] = None
    otherUser: Optional[PublicUser] = None


class HealthResponse(BaseModel):
    status: Literal["ok"]


class SignupResponse(BaseModel):
    success: bool
    user: User


class LoginResponse(BaseModel):
    accessToken: str
    user: User


class StatusResponse(BaseModel):
    success: bool
    message: Optional[str] = None


class UserResponse(BaseModel):
    user: User


class UploadImageResponse(BaseModel):
    success: bool
    path: str
    url: Optional[str]


class CreateProductResponse(BaseModel):
    success: bool
    product: Product


class ProductResponse(BaseModel):
    product: Product


class ListProductsResponse(BaseModel):
    products: list[Product]


class MessageResponse(BaseModel):
    success: bool
    message: Message


class ListConversationsResponse(BaseModel):
    conversations: list[Conversation]


class ListMessagesResponse(BaseModel):
    messages: list[Message]
