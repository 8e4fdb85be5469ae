"""PayPal Orders v2 client – create an order and capture it after approval."""

from __future__ import annotations

import logging
from typing import Any

import requests

import config
from errors import UpstreamError

logger = logging.getLogger("i2v.paypal")

ITEM_NAME = "AI Video Generation"
ITEM_DESCRIPTION = "Generate one AI video from an image"


class PayPalClient:
    """Client-credentials PayPal client. A fresh token is fetched per call."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        api_base: str = config.PAYPAL_API_BASE,
        return_base_url: str = config.BASE_URL,
        price: str = config.VIDEO_PRICE,
        currency: str = config.VIDEO_CURRENCY,
        timeout: float = config.REQUEST_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.api_base = api_base.rstrip("/")
        self.return_base_url = return_base_url.rstrip("/")
        self.price = price
        self.currency = currency
        self.timeout = timeout
        self._session = session or requests.Session()

    def get_access_token(self) -> str:
        data = self._call(
            "POST",
            "/v1/oauth2/token",
            auth=(self.client_id, self.client_secret),
            data={"grant_type": "client_credentials"},
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        token = data.get("access_token")
        if not token:
            raise UpstreamError("PayPal did not return an access token")
        return token

    def create_order(self) -> dict:
        """Create a CAPTURE order for one video. Returns {"order_id", "approval_url"}."""
        token = self.get_access_token()
        amount = {"currency_code": self.currency, "value": self.price}
        body = {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "amount": {**amount, "breakdown": {"item_total": dict(amount)}},
                    "description": ITEM_NAME,
                    "items": [
                        {
                            "name": ITEM_NAME,
                            "description": ITEM_DESCRIPTION,
                            "quantity": "1",
                            "unit_amount": dict(amount),
                            "category": "DIGITAL_GOODS",
                        }
                    ],
                }
            ],
            "application_context": {
                "return_url": f"{self.return_base_url}/api/paypal/capture",
                "cancel_url": self.return_base_url,
            },
        }
        data = self._call("POST", "/v2/checkout/orders", json=body, headers=_bearer(token))

        order_id = data.get("id")
        approval_url = next(
            (link.get("href") for link in data.get("links", []) if link.get("rel") == "approve"),
            None,
        )
        if not order_id or not approval_url:
            raise UpstreamError("PayPal order response is missing the id or approval link")
        logger.info("PayPal order created: %s", order_id)
        return {"order_id": order_id, "approval_url": approval_url}

    def capture_payment(self, order_id: str) -> dict:
        """Capture an approved order; returns the raw PayPal payload."""
        token = self.get_access_token()
        data = self._call(
            "POST",
            f"/v2/checkout/orders/{order_id}/capture",
            json={},
            headers=_bearer(token),
        )
        logger.info("PayPal capture for %s: %s", order_id, data.get("status"))
        return data

    # ------------------------------------------------------------------
    def _call(self, method: str, path: str, **kwargs: Any) -> dict:
        try:
            resp = self._session.request(
                method, f"{self.api_base}{path}", timeout=self.timeout, **kwargs
            )
        except requests.RequestException as e:
            logger.error("PayPal %s %s failed: %s", method, path, e)
            raise UpstreamError(f"PayPal unreachable: {e}") from e

        if not resp.ok:
            logger.error("PayPal %s %s returned %d: %.300s", method, path, resp.status_code, resp.text)
            raise UpstreamError(
                f"PayPal request failed with HTTP {resp.status_code}",
                provider_status=resp.status_code,
            )
        try:
            return resp.json()
        except ValueError as e:
            raise UpstreamError("PayPal returned invalid JSON") from e


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
