"""
Notification Service: fire-and-forget order status messages.

Messages are POSTed as JSON to the notification webhook (email/SMS/in-app
fan-out happens on the other side). Delivery failures are logged, never
raised: a status change is final whether or not the customer was told.
"""

import asyncio
import logging

import httpx

from config import settings
from models.order import Order

logger = logging.getLogger(__name__)

# Strong references to in-flight sends
_pending: set[asyncio.Task] = set()

STATUS_MESSAGES = {
    "ordered": "Thank you! We received your order.",
    "paid_waiting_approval": "We received your payment and are verifying it.",
    "cod_waiting_approval": "Your cash-on-delivery order is awaiting confirmation.",
    "paid_ready_pickup": "Your order is ready for pickup at the store.",
    "processing": "Your order is being prepared.",
    "in_transit": "Your order is on its way.",
    "waiting_client": "Our courier is waiting for you at the drop-off point.",
    "delivered": "Your order has been delivered.",
    "picked_up": "Your order has been picked up. Thank you!",
    "completed": "Your order is complete. Thank you for shopping with us!",
    "cancelled": "Your order has been cancelled.",
    "return_requested": "We received your return request.",
    "return_approved": "Your return request was approved.",
    "returned": "We received your returned items.",
    "refund_requested": "We received your refund request.",
    "refunded": "Your refund has been processed.",
}


def build_status_message(order: Order, previous_status: str | None) -> dict:
    status = order.status
    status_display = status.replace("_", " ").title()
    body = STATUS_MESSAGES.get(status, f"Status: {status_display}")
    if status == "in_transit" and order.tracking_number:
        courier = f" via {order.courier_name}" if order.courier_name else ""
        body += f" Tracking number{courier}: {order.tracking_number}."

    return {
        "event": "order.status_changed",
        "order_number": order.order_number,
        "customer_id": order.customer_id,
        "customer_email": order.customer_email,
        "previous_status": previous_status,
        "status": status,
        "subject": f"Order #{order.order_number}: {status_display}",
        "message": body,
    }


async def send_webhook(payload: dict) -> bool:
    """POST one message; returns False instead of raising."""
    if not settings.NOTIFY_WEBHOOK_URL:
        logger.debug("Notification webhook not configured; dropping %s", payload.get("event"))
        return False
    try:
        async with httpx.AsyncClient(timeout=settings.NOTIFY_TIMEOUT_S) as client:
            resp = await client.post(settings.NOTIFY_WEBHOOK_URL, json=payload)
            if not resp.is_success:
                logger.warning("Notification webhook returned HTTP %s", resp.status_code)
            return resp.is_success
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.warning("Notification webhook error: %s", e)
        return False


def dispatch_order_status(order: Order, previous_status: str | None) -> asyncio.Task | None:
    """
    Schedule the status message in the background and return immediately.

    The payload is built before scheduling, while the order is still loaded.
    Returns None when no webhook is configured.
    """
    if not settings.NOTIFY_WEBHOOK_URL:
        return None
    payload = build_status_message(order, previous_status)
    task = asyncio.create_task(send_webhook(payload))
    _pending.add(task)
    task.add_done_callback(_pending.discard)
    return task


async def drain_pending() -> None:
    """Wait for in-flight messages (called on app shutdown)."""
    if _pending:
        await asyncio.gather(*_pending, return_exceptions=True)
