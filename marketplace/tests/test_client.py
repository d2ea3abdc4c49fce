import threading
import unittest

from fastapi.testclient import TestClient

from marketplace.app import create_app
from marketplace.auth import InMemoryIdentityProvider
from marketplace.client import ApiError, MarketplaceClient, poll
from marketplace.db import InMemoryDbClient
from marketplace.dependencies import (
    get_db_client,
    get_identity_provider,
    get_storage_client,
)
from marketplace.storage import InMemoryStorageClient


class MarketplaceClientTests(unittest.TestCase):
    def setUp(self):
        app = create_app()
        db = InMemoryDbClient()
        storage = InMemoryStorageClient()
        identity = InMemoryIdentityProvider()
        app.dependency_overrides[get_db_client] = lambda: db
        app.dependency_overrides[get_storage_client] = lambda: storage
        app.dependency_overrides[get_identity_provider] = lambda: identity
        self.http = TestClient(app)

    def make_client(self) -> MarketplaceClient:
        return MarketplaceClient(http=self.http)

    def test_session_lifecycle(self):
        client = self.make_client()
        client.signup("a@srmist.edu.in", "pw", "Asha")
        with self.assertRaises(ApiError) as ctx:
            client.get_user()
        self.assertEqual(ctx.exception.status_code, 401)

        user = client.login("a@srmist.edu.in", "pw")
        self.assertEqual(client.session.user_id, user["id"])
        self.assertEqual(client.get_user()["name"], "Asha")

        client.logout()
        self.assertIsNone(client.session)

    def test_errors_carry_server_message(self):
        client = self.make_client()
        with self.assertRaises(ApiError) as ctx:
            client.signup("x@gmail.com", "pw", "X")
        self.assertEqual(ctx.exception.status_code, 400)
        self.assertIn("srmist.edu.in", ctx.exception.message)

    def test_buyer_seller_flow(self):
        with self.make_client() as seller, self.make_client() as buyer:
            seller.signup("a@srmist.edu.in", "pw", "Asha")
            seller_user = seller.login("a@srmist.edu.in", "pw")
            seller.verify_aadhar("123456789012")
            image = seller.upload_image("calc.png", b"img", "image/png")
            product = seller.create_product(
                "Calculator", 500, "good", image_path=image["path"]
            )

            buyer.signup("b@srmist.edu.in", "pw", "Bala")
            buyer.login("b@srmist.edu.in", "pw")
            self.assertEqual(
                [p["id"] for p in buyer.list_products(seller_id=seller_user["id"])],
                [product["id"]],
            )
            self.assertIn(image["path"], buyer.get_product(product["id"])["imageUrl"])
            message = buyer.send_message(product["id"], seller_user["id"], "interested")

            [conversation] = seller.list_conversations()
            self.assertEqual(conversation["lastMessage"], "interested")
            messages = seller.list_messages(message["conversationId"])
            self.assertEqual([m["message"] for m in messages], ["interested"])
        self.assertIsNone(seller.session)

    def test_poll_stops_when_event_set(self):
        stop = threading.Event()
        calls = []

        def fetch():
            calls.append(len(calls))
            if len(calls) == 3:
                stop.set()
            return len(calls)

        results = list(poll(fetch, interval=0.001, stop=stop))
        self.assertEqual(results, [1, 2, 3])

    def test_poll_propagates_errors(self):
        def fetch():
            raise ApiError(500, "Internal server error")

        with self.assertRaises(ApiError):
            next(poll(fetch, interval=0.001, stop=threading.Event()))


if __name__ == "__main__":
    unittest.main()
