"""
E-mail notifications - SendGrid v3 API
"""
from typing import Optional
import logging

import httpx

from orderbridge.domain.order import Order, OrderStatus
from .base import AdapterResult, HTTPAdapterMixin, NotificationAdapter

logger = logging.getLogger(__name__)

STATUS_SUBJECTS = {
    OrderStatus.PROCESSING: "Your order {number} is being processed",
    OrderStatus.CONFIRMED: "Your order {number} is confirmed",
    OrderStatus.SHIPPED: "Your order {number} has shipped",
    OrderStatus.DELIVERED: "Your order {number} was delivered",
    OrderStatus.CANCELLED: "Your order {number} was cancelled",
    OrderStatus.REFUNDED: "Your order {number} was refunded",
}


class SendGridNotifier(HTTPAdapterMixin, NotificationAdapter):
    PROVIDER_NAME = "sendgrid"

    BASE_URL = "https://api.sendgrid.com"

    def __init__(
        self,
        api_key: str,
        from_email: str,
        from_name: str = "",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.from_email = from_email
        self.from_name = from_name
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return self._make_client(
            base_url=self.BASE_URL,
            headers={"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"},
        )

    async def test_connection(self) -> AdapterResult:
        result = await self._request("GET", "/v3/scopes")
        if not result.success:
            return AdapterResult.fail(f"SendGrid connection failed: {result.error}")
        return AdapterResult.ok()

    async def send_order_status_update_email(self, order: Order, new_status: OrderStatus) -> AdapterResult:
        if not order.customer.email:
            return AdapterResult.fail(f"Order {order.order_number} has no customer e-mail")

        subject = STATUS_SUBJECTS.get(new_status, "Update on your order {number}").format(number=order.order_number)
        body = (
            f"Hello {order.customer.name},\n\n"
            f"The status of your order {order.order_number} is now: {new_status.value}.\n"
            f"Order total: {order.formatted_total()}\n"
        )
        if new_status == OrderStatus.SHIPPED and order.tracking_number:
            body += f"Tracking number: {order.tracking_number}\n"

        return await self._request(
            "POST",
            "/v3/mail/send",
            json={
                "personalizations": [{"to": [{"email": order.customer.email, "name": order.customer.name}]}],
                "from": {"email": self.from_email, "name": self.from_name},
                "subject": subject,
                "content": [{"type": "text/plain", "value": body}],
            },
        )
