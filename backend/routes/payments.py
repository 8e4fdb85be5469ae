"""API routes for the PayPal checkout flow."""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Query, Request
from fastapi.responses import RedirectResponse

from errors import UpstreamError
from models import CreateOrderResponse, OrderStatus
from services.job_manager import JobManager
from services.paypal import PayPalClient

router = APIRouter()
logger = logging.getLogger("i2v.routes.payments")


def _paypal(request: Request) -> PayPalClient:
    return request.app.state.paypal


def _manager(request: Request) -> JobManager:
    return request.app.state.job_manager


def _redirect(request: Request, **params: str) -> RedirectResponse:
    base_url = request.app.state.base_url
    return RedirectResponse(f"{base_url}/?{urlencode(params)}")


# ---------------------------------------------------------------------------
# POST /api/paypal/create-order
# ---------------------------------------------------------------------------
@router.post("/create-order", response_model=CreateOrderResponse)
def create_order(request: Request):
    """Create a PayPal order for one video generation."""
    try:
        order = _paypal(request).create_order()
    except UpstreamError as e:
        logger.error("PayPal create order failed: %s", e)
        raise UpstreamError("Failed to create PayPal order") from e

    _manager(request).create_order(order["order_id"], order["approval_url"])
    return CreateOrderResponse(order_id=order["order_id"], approval_url=order["approval_url"])


# ---------------------------------------------------------------------------
# GET /api/paypal/capture?token=
# ---------------------------------------------------------------------------
@router.get("/capture")
def capture(request: Request, token: Optional[str] = Query(None)):
    """PayPal return URL: capture the approved order and send the user back."""
    if not token:
        return _redirect(request, error="missing_order_id")

    manager = _manager(request)
    order = manager.get_order(token)
    if order and order["status"] == OrderStatus.CAPTURED.value:
        # Reloaded return URL; the payment already went through
        return _redirect(request, payment="success", orderId=token)

    pending = (OrderStatus.CREATED, OrderStatus.APPROVED)
    manager.set_order_status(token, OrderStatus.APPROVED, only_from=(OrderStatus.CREATED,))
    try:
        result = _paypal(request).capture_payment(token)
    except UpstreamError as e:
        logger.error("PayPal capture failed for %s: %s", token, e)
        return _capture_failed(request, manager, token, pending, "server_error")

    if result.get("status") == "COMPLETED":
        manager.set_order_status(token, OrderStatus.CAPTURED)
        return _redirect(request, payment="success", orderId=token)

    return _capture_failed(request, manager, token, pending, "capture_failed")


def _capture_failed(request, manager, token, pending, reason) -> RedirectResponse:
    manager.set_order_status(token, OrderStatus.FAILED, only_from=pending)
    order = manager.get_order(token)
    if order and order["status"] == OrderStatus.CAPTURED.value:
        # A concurrent capture of the same order won
        return _redirect(request, payment="success", orderId=token)
    return _redirect(request, payment="failed", reason=reason)
