import threading
import time
import unittest

from marketplace.db import (
    InMemoryDbClient,
    KvDbClient,
    MessageRecord,
    PostgresDbClient,
    ProductRecord,
    UserRecord,
)
from marketplace.kv import InMemoryKeyValueStore, SqlKeyValueStore


def make_message(sender: str, receiver: str, text: str, product_id: str, stamp: str):
    conv_id = ":".join(sorted([sender, receiver]))
    return MessageRecord(
        id=f"{conv_id}-{stamp}",
        conversation_id=conv_id,
        product_id=product_id,
        sender_id=sender,
        sender_name=sender.upper(),
        receiver_id=receiver,
        message=text,
        created_at=stamp,
    )


class DbClientContract:
    """Behaviour every DbClient layout must share."""

    def make_db(self):
        raise NotImplementedError

    def setUp(self):
        self.db = self.make_db()

    def test_user_roundtrip_and_update(self):
        user = UserRecord(id="u1", email="u1@srmist.edu.in", name="One")
        self.db.save_user(user)
        loaded = self.db.get_user("u1")
        self.assertEqual(loaded, user)

        loaded.aadhar_verified = True
        loaded.aadhar_number = "123456789012"
        self.db.save_user(loaded)
        self.assertTrue(self.db.get_user("u1").aadhar_verified)
        self.assertIsNone(self.db.get_user("missing"))

    def test_products_by_seller(self):
        for index, seller in enumerate(["s1", "s2", "s1"]):
            self.db.save_product(
                ProductRecord(
                    id=f"p{index}",
                    title=f"Item {index}",
                    price=10.0 * index,
                    condition="good",
                    seller_id=seller,
                    seller_name=seller,
                    seller_email=f"{seller}@srmist.edu.in",
                )
            )
        self.assertEqual(len(self.db.list_products()), 3)
        self.assertEqual(
            sorted(p.id for p in self.db.list_products(seller_id="s1")), ["p0", "p2"]
        )
        self.assertEqual(self.db.get_product("p1").price, 10.0)
        self.assertIsNone(self.db.get_product("nope"))

    def test_append_message_upserts_conversation(self):
        first = make_message("b", "a", "hi", "p1", "2025-01-01T00:00:00.000000+00:00")
        conversation = self.db.append_message(first)
        self.assertEqual(conversation.id, "a:b")
        self.assertEqual(conversation.participants, ["a", "b"])

        second = make_message("a", "b", "hello", "p2", "2025-01-01T00:01:00.000000+00:00")
        self.db.append_message(second)

        stored = self.db.get_conversation("a:b")
        self.assertEqual(stored.product_id, "p1")
        self.assertEqual(stored.last_message, "hello")
        self.assertEqual(stored.last_message_at, second.created_at)
        self.assertEqual(len(self.db.list_messages("a:b")), 2)

    def test_list_conversations_filters_by_participant(self):
        self.db.append_message(make_message("a", "b", "1", "p", "2025-01-01T00:00:00+00:00"))
        self.db.append_message(make_message("c", "a", "2", "p", "2025-01-01T00:00:01+00:00"))
        self.db.append_message(make_message("c", "b", "3", "p", "2025-01-01T00:00:02+00:00"))
        self.assertEqual(
            sorted(c.id for c in self.db.list_conversations("a")), ["a:b", "a:c"]
        )
        self.assertEqual(
            sorted(c.id for c in self.db.list_conversations("c")), ["a:c", "b:c"]
        )
        self.assertEqual(self.db.list_conversations("z"), [])

    def test_messages_scoped_to_conversation(self):
        self.db.append_message(make_message("a", "b", "ab", "p", "2025-01-01T00:00:00+00:00"))
        self.db.append_message(make_message("a", "bc", "abc", "p", "2025-01-01T00:00:01+00:00"))
        self.assertEqual([m.message for m in self.db.list_messages("a:b")], ["ab"])
        self.assertEqual([m.message for m in self.db.list_messages("a:bc")], ["abc"])


class SlowConversationReads(InMemoryKeyValueStore):
    """Widens the gap between reading a conversation and writing it back."""

    def __init__(self):
        super().__init__()
        self.writes = []

    def get(self, key):
        value = super().get(key)
        if key.startswith("conversation:"):
            time.sleep(0.05)
        return value

    def set_many(self, items):
        self.writes.append(items)
        super().set_many(items)


class InMemoryDbClientTests(DbClientContract, unittest.TestCase):
    def make_db(self):
        return InMemoryDbClient()

    def test_reset_clears_everything(self):
        self.db.save_user(UserRecord(id="u1", email="u1@srmist.edu.in", name="One"))
        self.db.reset()
        self.assertIsNone(self.db.get_user("u1"))

    def test_concurrent_first_sends_keep_one_seed(self):
        store = SlowConversationReads()
        db = KvDbClient(store)
        threads = [
            threading.Thread(
                target=db.append_message,
                args=(make_message(sender, receiver, "hi", product, stamp),),
            )
            for sender, receiver, product, stamp in [
                ("a", "b", "p1", "2025-01-01T00:00:00.000000+00:00"),
                ("b", "a", "p2", "2025-01-01T00:00:01.000000+00:00"),
            ]
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(len(store.writes), 2)
        [seed] = [
            value for key, value in store.writes[0].items() if key.startswith("message:")
        ]
        self.assertEqual(db.get_conversation("a:b").product_id, seed["productId"])
        self.assertEqual(len(db.list_messages("a:b")), 2)


class SqlKvDbClientTests(DbClientContract, unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the key/value layout.
    """

    def make_db(self):
        return KvDbClient(SqlKeyValueStore("sqlite+pysqlite:///:memory:"))


class PostgresDbClientTests(DbClientContract, unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the Postgres client logic.
    """

    def make_db(self):
        return PostgresDbClient("sqlite+pysqlite:///:memory:")

    def test_requires_url(self):
        with self.assertRaises(ValueError):
            PostgresDbClient("")


if __name__ == "__main__":
    unittest.main()
