"""
Stock movements tied to order status.

Reservations are created at checkout. When fulfilment starts they are
committed (stock leaves the shelf), a cancellation releases them, and a
return or refund puts committed stock back. Catalog quantities are owned
by the catalog service; this ledger is what it reconciles against.
"""

import logging

from models.inventory import ReservationState, StockReservation
from models.order import Order, OrderStatus

logger = logging.getLogger(__name__)

# target status → (state moved from, state moved to)
_MOVEMENTS = {
    OrderStatus.PROCESSING: (ReservationState.RESERVED, ReservationState.COMMITTED),
    OrderStatus.PICKED_UP: (ReservationState.RESERVED, ReservationState.COMMITTED),
    OrderStatus.CANCELLED: (ReservationState.RESERVED, ReservationState.RELEASED),
    OrderStatus.RETURNED: (ReservationState.COMMITTED, ReservationState.RESTOCKED),
    OrderStatus.REFUNDED: (ReservationState.COMMITTED, ReservationState.RESTOCKED),
}


def reserve_stock(order: Order) -> list[StockReservation]:
    """One RESERVED line per order item; call after the items are flushed."""
    reservations = [
        StockReservation(
            order_id=order.id,
            order_item_id=item.id,
            product_id=item.product_id,
            variation_id=item.variation_id,
            quantity=item.quantity,
            state=ReservationState.RESERVED.value,
        )
        for item in order.items
    ]
    order.reservations.extend(reservations)
    return reservations


def apply_stock_movements(order: Order, previous, target: OrderStatus, actor) -> None:
    """Lifecycle hook: move this order's reservations for the new status."""
    movement = _MOVEMENTS.get(target)
    if movement is None:
        return

    source, dest = movement
    moving = [r for r in order.reservations if r.state == source.value]
    for reservation in moving:
        reservation.state = dest.value

    if moving:
        logger.info(
            "Order %s: %d reservation(s) %s → %s",
            order.order_number, len(moving), source.value, dest.value,
        )
