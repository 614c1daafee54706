"""Stock reservation held against an order line until it ships or is released."""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.database import Base
from models.order import utcnow


class ReservationState(str, Enum):
    RESERVED = "RESERVED"      # held at checkout
    COMMITTED = "COMMITTED"    # deducted when fulfilment starts
    RELEASED = "RELEASED"      # order cancelled before fulfilment
    RESTOCKED = "RESTOCKED"    # returned / refunded after fulfilment


class StockReservation(Base):
    __tablename__ = "stock_reservations"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    order_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("orders.id"), nullable=False, index=True)
    order_item_id: Mapped[int | None] = mapped_column(ForeignKey("order_items.id"))
    product_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    variation_id: Mapped[int | None] = mapped_column(Integer)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    state: Mapped[str] = mapped_column(String(16), default=ReservationState.RESERVED.value)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    order = relationship("Order", back_populates="reservations")
