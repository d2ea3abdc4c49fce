"""
Database abstraction for the marketplace entities.

Two layouts are supported: ``KvDbClient`` keeps every record in one
prefix-namespaced key/value table, ``PostgresDbClient`` keeps one table per
entity with indices by seller and by conversation. ``InMemoryDbClient`` is the
key/value layout over a dictionary, for development and tests.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Protocol

from sqlalchemy import (
    Boolean,
    Column,
    Float,
    String,
    Text,
    create_engine,
    or_,
    select,
)
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from marketplace.kv import InMemoryKeyValueStore, KeyValueStore


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def timestamp_key(value: str) -> datetime:
    """Sort key for ISO-8601 timestamps, tolerant of a trailing ``Z``."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class UserRecord:
    id: str
    email: str
    name: str
    aadhar_verified: bool = False
    aadhar_number: Optional[str] = None
    created_at: str = field(default_factory=utc_now)
    aadhar_verified_at: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "aadharVerified": self.aadhar_verified,
            "aadharNumber": self.aadhar_number,
            "createdAt": self.created_at,
            "aadharVerifiedAt": self.aadhar_verified_at,
        }

    def public_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "email": self.email}

    @classmethod
    def from_dict(cls, data: dict) -> "UserRecord":
        return cls(
            id=data["id"],
            email=data["email"],
            name=data.get("name") or "",
            aadhar_verified=bool(data.get("aadharVerified")),
            aadhar_number=data.get("aadharNumber"),
            created_at=data["createdAt"],
            aadhar_verified_at=data.get("aadharVerifiedAt"),
        )


@dataclass
class ProductRecord:
    id: str
    title: str
    price: float
    condition: str
    seller_id: str
    seller_name: str
    seller_email: str
    description: Optional[str] = None
    image_path: Optional[str] = None
    status: str = "active"
    created_at: str = field(default_factory=utc_now)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "price": self.price,
            "condition": self.condition,
            "imagePath": self.image_path,
            "sellerId": self.seller_id,
            "sellerName": self.seller_name,
            "sellerEmail": self.seller_email,
            "status": self.status,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProductRecord":
        return cls(
            id=data["id"],
            title=data["title"],
            description=data.get("description"),
            price=float(data["price"]),
            condition=data["condition"],
            image_path=data.get("imagePath"),
            seller_id=data["sellerId"],
            seller_name=data.get("sellerName") or "",
            seller_email=data.get("sellerEmail") or "",
            status=data.get("status", "active"),
            created_at=data["createdAt"],
        )


@dataclass
class MessageRecord:
    id: str
    conversation_id: str
    product_id: str
    sender_id: str
    sender_name: str
    receiver_id: str
    message: str
    created_at: str = field(default_factory=utc_now)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "conversationId": self.conversation_id,
            "productId": self.product_id,
            "senderId": self.sender_id,
            "senderName": self.sender_name,
            "receiverId": self.receiver_id,
            "message": self.message,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MessageRecord":
        return cls(
            id=data["id"],
            conversation_id=data["conversationId"],
            product_id=data["productId"],
            sender_id=data["senderId"],
            sender_name=data.get("senderName") or "",
            receiver_id=data["receiverId"],
            message=data["message"],
            created_at=data["createdAt"],
        )


@dataclass
class ConversationRecord:
    id: str
    participants: list[str]
    product_id: str
    last_message: str
    last_message_at: str

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "participants": list(self.participants),
            "productId": self.product_id,
            "lastMessage": self.last_message,
            "lastMessageAt": self.last_message_at,
        }

    def other_participant(self, user_id: str) -> Optional[str]:
        for participant in self.participants:
            if participant != user_id:
                return participant
        return None

    @classmethod
    def from_dict(cls, data: dict) -> "ConversationRecord":
        return cls(
            id=data["id"],
            participants=list(data["participants"]),
            product_id=data["productId"],
            last_message=data["lastMessage"],
            last_message_at=data["lastMessageAt"],
        )

    @classmethod
    def seeded_by(
        cls, message: MessageRecord, existing: Optional["ConversationRecord"]
    ) -> "ConversationRecord":
        """Summary after ``message``; the seeding product survives later sends."""
        return cls(
            id=message.conversation_id,
            participants=sorted([message.sender_id, message.receiver_id]),
            product_id=existing.product_id if existing else message.product_id,
            last_message=message.message,
            last_message_at=message.created_at,
        )


class DbClient(Protocol):
    """Interface for database access."""

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        ...

    def save_user(self, user: UserRecord) -> None:
        ...

    def save_product(self, product: ProductRecord) -> None:
        ...

    def get_product(self, product_id: str) -> Optional[ProductRecord]:
        ...

    def list_products(self, seller_id: Optional[str] = None) -> list[ProductRecord]:
        ...

    def get_conversation(self, conversation_id: str) -> Optional[ConversationRecord]:
        ...

    def append_message(self, message: MessageRecord) -> ConversationRecord:
        """Persist the message and its conversation summary as one write."""
        ...

    def list_conversations(self, user_id: str) -> list[ConversationRecord]:
        ...

    def list_messages(self, conversation_id: str) -> list[MessageRecord]:
        ...


class KvDbClient:
    """Entities laid out as prefixed keys in a key/value store."""

    def __init__(self, store: KeyValueStore):
        self.store = store
        # Serializes the conversation read-modify-write in append_message.
        self._append_lock = threading.Lock()

    @staticmethod
    def _user_key(user_id: str) -> str:
        return f"user:{user_id}"

    @staticmethod
    def _product_key(product_id: str) -> str:
        return f"product:{product_id}"

    @staticmethod
    def _conversation_key(conversation_id: str) -> str:
        return f"conversation:{conversation_id}"

    @staticmethod
    def _message_prefix(conversation_id: str) -> str:
        return f"message:{conversation_id}:"

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        data = self.store.get(self._user_key(user_id))
        return UserRecord.from_dict(data) if data else None

    def save_user(self, user: UserRecord) -> None:
        self.store.set(self._user_key(user.id), user.as_dict())

    def save_product(self, product: ProductRecord) -> None:
        self.store.set(self._product_key(product.id), product.as_dict())

    def get_product(self, product_id: str) -> Optional[ProductRecord]:
        data = self.store.get(self._product_key(product_id))
        return ProductRecord.from_dict(data) if data else None

    def list_products(self, seller_id: Optional[str] = None) -> list[ProductRecord]:
        products = [
            ProductRecord.from_dict(data)
            for data in self.store.get_by_prefix("product:")
        ]
        if seller_id is not None:
            products = [p for p in products if p.seller_id == seller_id]
        return products

    def get_conversation(self, conversation_id: str) -> Optional[ConversationRecord]:
        data = self.store.get(self._conversation_key(conversation_id))
        return ConversationRecord.from_dict(data) if data else None

    def append_message(self, message: MessageRecord) -> ConversationRecord:
        message_key = self._message_prefix(message.conversation_id) + message.id
        with self._append_lock:
            existing = self.get_conversation(message.conversation_id)
            conversation = ConversationRecord.seeded_by(message, existing)
            self.store.set_many(
                {
                    message_key: message.as_dict(),
                    self._conversation_key(conversation.id): conversation.as_dict(),
                }
            )
        return conversation

    def list_conversations(self, user_id: str) -> list[ConversationRecord]:
        conversations = [
            ConversationRecord.from_dict(data)
            for data in self.store.get_by_prefix("conversation:")
        ]
        return [c for c in conversations if user_id in c.participants]

    def list_messages(self, conversation_id: str) -> list[MessageRecord]:
        return [
            MessageRecord.from_dict(data)
            for data in self.store.get_by_prefix(self._message_prefix(conversation_id))
        ]


class InMemoryDbClient(KvDbClient):
    """Simple in-memory database for development and tests."""

    def __init__(self):
        super().__init__(InMemoryKeyValueStore())

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.store.clear()


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def _to_user_record(self, row: "UserRow") -> UserRecord:
        return UserRecord(
            id=row.id,
            email=row.email,
            name=row.name,
            aadhar_verified=row.aadhar_verified,
            aadhar_number=row.aadhar_number,
            created_at=row.created_at,
            aadhar_verified_at=row.aadhar_verified_at,
        )

    def _to_product_record(self, row: "ProductRow") -> ProductRecord:
        return ProductRecord(
            id=row.id,
            title=row.title,
            description=row.description,
            price=row.price,
            condition=row.condition,
            image_path=row.image_path,
            seller_id=row.seller_id,
            seller_name=row.seller_name,
            seller_email=row.seller_email,
            status=row.status,
            created_at=row.created_at,
        )

    def _to_message_record(self, row: "MessageRow") -> MessageRecord:
        return MessageRecord(
            id=row.id,
            conversation_id=row.conversation_id,
            product_id=row.product_id,
            sender_id=row.sender_id,
            sender_name=row.sender_name,
            receiver_id=row.receiver_id,
            message=row.message,
            created_at=row.created_at,
        )

    def _to_conversation_record(self, row: "ConversationRow") -> ConversationRecord:
        return ConversationRecord(
            id=row.id,
            participants=[row.participant_a, row.participant_b],
            product_id=row.product_id,
            last_message=row.last_message,
            last_message_at=row.last_message_at,
        )

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            return self._to_user_record(row) if row else None

    def save_user(self, user: UserRecord) -> None:
        with self.Session() as session:
            row = session.get(UserRow, user.id)
            if not row:
                row = UserRow(id=user.id)
                session.add(row)
            row.email = user.email
            row.name = user.name
            row.aadhar_verified = user.aadhar_verified
            row.aadhar_number = user.aadhar_number
            row.created_at = user.created_at
            row.aadhar_verified_at = user.aadhar_verified_at
            session.commit()

    def save_product(self, product: ProductRecord) -> None:
        with self.Session() as session:
            session.add(
                ProductRow(
                    id=product.id,
                    title=product.title,
                    description=product.description,
                    price=product.price,
                    condition=product.condition,
                    image_path=product.image_path,
                    seller_id=product.seller_id,
                    seller_name=product.seller_name,
                    seller_email=product.seller_email,
                    status=product.status,
                    created_at=product.created_at,
                )
            )
            session.commit()

    def get_product(self, product_id: str) -> Optional[ProductRecord]:
        with self.Session() as session:
            row = session.get(ProductRow, product_id)
            return self._to_product_record(row) if row else None

    def list_products(self, seller_id: Optional[str] = None) -> list[ProductRecord]:
        with self.Session() as session:
            stmt = select(ProductRow)
            if seller_id is not None:
                stmt = stmt.where(ProductRow.seller_id == seller_id)
            rows = session.execute(stmt).scalars().all()
            return [self._to_product_record(row) for row in rows]

    def get_conversation(self, conversation_id: str) -> Optional[ConversationRecord]:
        with self.Session() as session:
            row = session.get(ConversationRow, conversation_id)
            return self._to_conversation_record(row) if row else None

    def append_message(self, message: MessageRecord) -> ConversationRecord:
        with self.Session() as session:
            session.add(
                MessageRow(
                    id=message.id,
                    conversation_id=message.conversation_id,
                    product_id=message.product_id,
                    sender_id=message.sender_id,
                    sender_name=message.sender_name,
                    receiver_id=message.receiver_id,
                    message=message.message,
                    created_at=message.created_at,
                )
            )
            row = session.get(ConversationRow, message.conversation_id)
            existing = self._to_conversation_record(row) if row else None
            conversation = ConversationRecord.seeded_by(message, existing)
            if not row:
                row = ConversationRow(
                    id=conversation.id,
                    participant_a=conversation.participants[0],
                    participant_b=conversation.participants[1],
                    product_id=conversation.product_id,
                )
                session.add(row)
            row.last_message = conversation.last_message
            row.last_message_at = conversation.last_message_at
            session.commit()
            return conversation

    def list_conversations(self, user_id: str) -> list[ConversationRecord]:
        with self.Session() as session:
            stmt = select(ConversationRow).where(
                or_(
                    ConversationRow.participant_a == user_id,
                    ConversationRow.participant_b == user_id,
                )
            )
            rows = session.execute(stmt).scalars().all()
            return [self._to_conversation_record(row) for row in rows]

    def list_messages(self, conversation_id: str) -> list[MessageRecord]:
        with self.Session() as session:
            stmt = select(MessageRow).where(
                MessageRow.conversation_id == conversation_id
            )
            rows = session.execute(stmt).scalars().all()
            return [self._to_message_record(row) for row in rows]


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=False)
    aadhar_verified = Column(Boolean, nullable=False, default=False)
    aadhar_number = Column(String, nullable=True)
    created_at = Column(String, nullable=False)
    aadhar_verified_at = Column(String, nullable=True)


class ProductRow(Base):
    __tablename__ = "products"

    id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Float, nullable=False)
    condition = Column(String, nullable=False)
    image_path = Column(String, nullable=True)
    seller_id = Column(String, nullable=False, index=True)
    seller_name = Column(String, nullable=False)
    seller_email = Column(String, nullable=False)
    status = Column(String, nullable=False, default="active")
    created_at = Column(String, nullable=False, index=True)


class MessageRow(Base):
    __tablename__ = "messages"

    id = Column(String, primary_key=True)
    conversation_id = Column(String, nullable=False, index=True)
    product_id = Column(String, nullable=False)
    sender_id = Column(String, nullable=False)
    sender_name = Column(String, nullable=False)
    receiver_id = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    created_at = Column(String, nullable=False)


class ConversationRow(Base):
    __tablename__ = "conversations"

    id = Column(String, primary_key=True)
    participant_a = Column(String, nullable=False, index=True)
    participant_b = Column(String, nullable=False, index=True)
    product_id = Column(String, nullable=False)
    last_message = Column(Text, nullable=False)
    last_message_at = Column(String, nullable=False)
