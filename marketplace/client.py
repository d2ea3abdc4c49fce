"""
Python client for the marketplace API.

The access token lives on an explicit ``Session`` owned by the client: it is
created by ``login`` and dropped by ``logout`` or ``close``.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional, TypeVar

import httpx

T = TypeVar("T")

DEFAULT_CONVERSATION_POLL_SECONDS = 5.0
DEFAULT_MESSAGE_POLL_SECONDS = 3.0


class ApiError(Exception):
    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"{status_code}: {message}")


@dataclass
class Session:
    access_token: str
    user_id: str


class MarketplaceClient:
    def __init__(
        self,
        base_url: str = "",
        *,
        http: Optional[httpx.Client] = None,
        api_prefix: str = "/api",
    ):
        self._http = http or httpx.Client(base_url=base_url, timeout=30)
        self._owns_http = http is None
        self.api_prefix = api_prefix
        self.session: Optional[Session] = None

    def __enter__(self) -> "MarketplaceClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self.session = None
        if self._owns_http:
            self._http.close()

    def _headers(self, auth: bool) -> dict:
        if not auth:
            return {}
        if not self.session:
            raise ApiError(401, "Not signed in")
        return {"Authorization": f"Bearer {self.session.access_token}"}

    def _request(self, method: str, path: str, *, auth: bool = True, **kwargs) -> Any:
        response = self._http.request(
            method,
            f"{self.api_prefix}{path}",
            headers=self._headers(auth),
            **kwargs,
        )
        if response.is_error:
            try:
                message = response.json().get("error") or "API call failed"
            except ValueError:
                message = response.text or "API call failed"
            raise ApiError(response.status_code, message)
        return response.json()

    def signup(self, email: str, password: str, name: str) -> dict:
        data = self._request(
            "POST",
            "/signup",
            auth=False,
            json={"email": email, "password": password, "name": name},
        )
        return data["user"]

    def login(self, email: str, password: str) -> dict:
        data = self._request(
            "POST",
            "/login",
            auth=False,
            json={"email": email, "password": password},
        )
        self.session = Session(
            access_token=data["accessToken"], user_id=data["user"]["id"]
        )
        return data["user"]

    def logout(self) -> None:
        if not self.session:
            return
        try:
            self._request("POST", "/logout")
        finally:
            self.session = None

    def get_user(self) -> dict:
        return self._request("GET", "/user")["user"]

    def verify_aadhar(self, aadhar_number: str) -> str:
        data = self._request(
            "POST", "/verify-aadhar", json={"aadharNumber": aadhar_number}
        )
        return data["message"]

    def upload_image(
        self, filename: str, content: bytes, content_type: str = "image/jpeg"
    ) -> dict:
        data = self._request(
            "POST",
            "/upload-image",
            files={"file": (filename, content, content_type)},
        )
        return {"path": data["path"], "url": data["url"]}

    def create_product(
        self,
        title: str,
        price: float | str,
        condition: str,
        description: Optional[str] = None,
        image_path: Optional[str] = None,
    ) -> dict:
        body = {
            "title": title,
            "description": description,
            "price": price,
            "condition": condition,
            "imagePath": image_path,
        }
        return self._request("POST", "/products", json=body)["product"]

    def list_products(self, seller_id: Optional[str] = None) -> list[dict]:
        params = {"sellerId": seller_id} if seller_id else None
        return self._request("GET", "/products", auth=False, params=params)[
            "products"
        ]

    def get_product(self, product_id: str) -> dict:
        return self._request("GET", f"/products/{product_id}", auth=False)["product"]

    def send_message(self, product_id: str, receiver_id: str, message: str) -> dict:
        body = {"productId": product_id, "receiverId": receiver_id, "message": message}
        return self._request("POST", "/messages/send", json=body)["message"]

    def list_conversations(self) -> list[dict]:
        return self._request("GET", "/conversations")["conversations"]

    def list_messages(self, conversation_id: str) -> list[dict]:
        return self._request("GET", f"/messages/{conversation_id}")["messages"]


def poll(
    fetch: Callable[[], T], interval: float, stop: threading.Event
) -> Iterator[T]:
    """
    Call ``fetch`` every ``interval`` seconds until ``stop`` is set.

    Errors from ``fetch`` propagate to the caller; there is no backoff.
    """
    while not stop.is_set():
        yield fetch()
        if stop.wait(interval):
            break
