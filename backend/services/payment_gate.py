"""Payment gate – decides whether a video submission has been paid for."""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from fastapi import Request

from errors import PaymentRequiredError
from models import OrderStatus
from services.job_manager import JobManager

logger = logging.getLogger("i2v.payment_gate")


def client_ip(request: Request) -> Optional[str]:
    """Best-effort caller address: proxy headers first, then the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else None


class PaymentGate:
    """
    An order pays for exactly one job. It must have been captured through
    /api/paypal/capture and not yet be bound to another job.

    Callers on the bypass list skip the check entirely, but only when bypass
    is enabled; it is off by default.
    """

    def __init__(
        self,
        manager: JobManager,
        *,
        bypass_enabled: bool = False,
        bypass_ips: Iterable[str] = (),
    ) -> None:
        self.manager = manager
        self.bypass_enabled = bypass_enabled
        self.bypass_ips = frozenset(bypass_ips)

    def is_bypassed(self, ip: Optional[str]) -> bool:
        if not self.bypass_enabled or not ip:
            return False
        return ip in self.bypass_ips

    def reserve(self, order_id: Optional[str], ip: Optional[str]) -> Optional[str]:
        """
        Claim the order for a submission.

        Returns the reserved order id, or None when the caller is bypassed.
        Raises PaymentRequiredError otherwise.
        """
        if self.is_bypassed(ip):
            logger.warning("Payment bypassed for %s", ip)
            return None

        if not order_id:
            logger.info("Payment required but no order id provided (ip=%s)", ip)
            raise PaymentRequiredError("Payment required for video generation")

        order = self.manager.get_order(order_id)
        if not order or order["status"] != OrderStatus.CAPTURED.value:
            logger.info("Order %s is not captured", order_id)
            raise PaymentRequiredError("Payment has not been completed for this order")

        if not self.manager.reserve_order(order_id):
            logger.info("Order %s has already been used", order_id)
            raise PaymentRequiredError("This payment has already been used")
        return order_id

    def release(self, order_id: Optional[str]) -> None:
        """Give a reserved order back after a failed submission."""
        if order_id:
            self.manager.release_order(order_id)
            logger.info("Order %s released after failed submission", order_id)

    def bind(self, order_id: Optional[str], task_id: str) -> None:
        if order_id:
            self.manager.bind_order(order_id, task_id)
