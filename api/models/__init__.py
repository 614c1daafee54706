from models.order import Order, OrderItem, OrderEvent
from models.inventory import StockReservation

__all__ = [
    "Order", "OrderItem", "OrderEvent", "StockReservation",
]
