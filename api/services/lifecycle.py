"""
Order Lifecycle: the single authority over `Order.status`.

Every status change goes through `OrderLifecycleManager.transition`, which
checks the pair against ALLOWED_TRANSITIONS and then runs the transition
hooks (payment settlement, timestamps, stock movements). A failing hook
restores the order's fields and re-raises, so a transition is applied
completely or not at all.

The manager only validates and applies signals; when a parcel actually
goes out or arrives is decided by the fulfilment staff or the courier.
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from types import MappingProxyType

from models.order import (
    ActorType, Order, OrderStatus, PaymentMethod, PaymentStatus, ShippingMethod, utcnow,
)

logger = logging.getLogger(__name__)

S = OrderStatus

ALLOWED_TRANSITIONS = MappingProxyType({
    S.ORDERED: frozenset({
        S.PAID_WAITING_APPROVAL, S.COD_WAITING_APPROVAL, S.PAID_READY_PICKUP,
        S.PROCESSING, S.CANCELLED,
    }),
    S.PAID_WAITING_APPROVAL: frozenset({S.PROCESSING, S.CANCELLED}),
    S.COD_WAITING_APPROVAL: frozenset({S.PROCESSING, S.CANCELLED}),
    S.PAID_READY_PICKUP: frozenset({S.PROCESSING, S.PICKED_UP}),
    S.PROCESSING: frozenset({S.IN_TRANSIT, S.PAID_READY_PICKUP}),
    S.IN_TRANSIT: frozenset({S.WAITING_CLIENT, S.DELIVERED}),
    S.WAITING_CLIENT: frozenset({S.DELIVERED}),
    S.DELIVERED: frozenset({S.COMPLETED, S.RETURN_REQUESTED, S.REFUND_REQUESTED}),
    S.PICKED_UP: frozenset({S.COMPLETED}),
    S.COMPLETED: frozenset({S.RETURN_REQUESTED, S.REFUND_REQUESTED}),
    # staff may reject a request, which puts the order back to completed
    S.RETURN_REQUESTED: frozenset({S.RETURN_APPROVED, S.COMPLETED}),
    S.RETURN_APPROVED: frozenset({S.RETURNED}),
    S.REFUND_REQUESTED: frozenset({S.REFUNDED, S.COMPLETED}),
    S.CANCELLED: frozenset(),
    S.RETURNED: frozenset(),
    S.REFUNDED: frozenset(),
})

CANCELLABLE_STATUSES = frozenset({S.ORDERED, S.PAID_WAITING_APPROVAL, S.COD_WAITING_APPROVAL})
RETURN_ELIGIBLE_STATUSES = frozenset({S.DELIVERED, S.COMPLETED})
RETURN_REQUEST_STATUSES = frozenset({S.RETURN_REQUESTED, S.REFUND_REQUESTED})
TERMINAL_STATUSES = frozenset(s for s, nxt in ALLOWED_TRANSITIONS.items() if not nxt)

# Payment collected on hand-over for these methods
PAY_ON_HANDOVER_METHODS = frozenset({PaymentMethod.COD.value, PaymentMethod.STORE_PAYMENT.value})
HANDOVER_STATUSES = frozenset({S.DELIVERED, S.PICKED_UP, S.COMPLETED})
MONEY_BACK_STATUSES = frozenset({S.RETURNED, S.REFUNDED})

# Statuses that only make sense for one fulfilment route
DELIVERY_ONLY_STATUSES = frozenset({S.IN_TRANSIT, S.WAITING_CLIENT, S.DELIVERED})
PICKUP_ONLY_STATUSES = frozenset({S.PAID_READY_PICKUP, S.PICKED_UP})

# Order fields a transition (and its hooks) may touch
_TRACKED_FIELDS = (
    "status", "status_changed_at", "payment_status", "delivered_at", "cancelled_at",
)


# ── Errors ─────────────────────────────────────────────────

class TransitionError(Exception):
    """Base class for rejected lifecycle transitions."""

    code = "transition_error"

    def __init__(self, order_number: str, current: str, attempted: str, detail: str | None = None):
        self.order_number = order_number
        self.current = current
        self.attempted = attempted
        self.detail = detail or f"cannot move order {order_number} from {current} to {attempted}"
        super().__init__(self.detail)

    def as_dict(self) -> dict:
        return {
            "error": self.code,
            "order_number": self.order_number,
            "current_status": self.current,
            "attempted_status": self.attempted,
            "detail": self.detail,
        }


class InvalidTransition(TransitionError):
    code = "invalid_transition"


class NotCancellable(InvalidTransition):
    code = "not_cancellable"


class NotEligibleForReturn(InvalidTransition):
    code = "not_eligible_for_return"


class ConflictingTransition(TransitionError):
    code = "conflicting_transition"


@dataclass(frozen=True)
class Actor:
    actor_type: ActorType
    actor_id: str | None = None


SYSTEM_ACTOR = Actor(ActorType.SYSTEM, "system")


# ── Transition table ───────────────────────────────────────

def _as_status(value, order_number: str, current: str, attempted: str) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise InvalidTransition(
            order_number, current, attempted, detail=f"unknown order status: {value!r}",
        ) from None


def _off_route(shipping_method: str | None, target: OrderStatus) -> bool:
    if shipping_method == ShippingMethod.STORE_PICKUP.value:
        return target in DELIVERY_ONLY_STATUSES
    if shipping_method == ShippingMethod.DELIVERY.value:
        return target in PICKUP_ONLY_STATUSES
    return False


def allowed_targets(
    current: OrderStatus | str,
    shipping_method: str | None = None,
) -> list[OrderStatus]:
    """Statuses reachable in one step, in enum declaration order."""
    nxt = ALLOWED_TRANSITIONS.get(OrderStatus(current), frozenset())
    return [s for s in OrderStatus if s in nxt and not _off_route(shipping_method, s)]


def check_transition(current: OrderStatus, target: OrderStatus, order_number: str = "?") -> None:
    """Raise the specific TransitionError for a pair outside the table."""
    if target in ALLOWED_TRANSITIONS[current]:
        return

    if target == S.CANCELLED and current not in CANCELLABLE_STATUSES:
        raise NotCancellable(
            order_number, current.value, target.value,
            detail=f"order {order_number} is already {current.value} and can no longer be cancelled",
        )
    if target in RETURN_REQUEST_STATUSES and current not in RETURN_ELIGIBLE_STATUSES:
        raise NotEligibleForReturn(
            order_number, current.value, target.value,
            detail=f"order {order_number} must be delivered or completed before a {target.value.replace('_', ' ')}",
        )
    raise InvalidTransition(order_number, current.value, target.value)


# ── Hooks ──────────────────────────────────────────────────

TransitionHook = Callable[[Order, OrderStatus, OrderStatus, Actor], None]


def settle_payment(order: Order, previous: OrderStatus, target: OrderStatus, actor: Actor) -> None:
    """Mark cash-on-hand-over orders paid on hand-over, and money-back orders refunded."""
    if target in MONEY_BACK_STATUSES:
        order.payment_status = PaymentStatus.REFUNDED.value
    elif target in HANDOVER_STATUSES and order.payment_method in PAY_ON_HANDOVER_METHODS:
        if order.payment_status != PaymentStatus.REFUNDED.value:
            order.payment_status = PaymentStatus.PAID.value


def stamp_milestones(order: Order, previous: OrderStatus, target: OrderStatus, actor: Actor) -> None:
    if target in (S.DELIVERED, S.PICKED_UP):
        order.delivered_at = order.status_changed_at
    elif target == S.CANCELLED:
        order.cancelled_at = order.status_changed_at


DEFAULT_HOOKS: tuple[TransitionHook, ...] = (settle_payment, stamp_milestones)


# ── Manager ────────────────────────────────────────────────

class OrderLifecycleManager:
    def __init__(self, hooks: Sequence[TransitionHook] = DEFAULT_HOOKS):
        self._hooks = tuple(hooks)

    def transition(self, order: Order, target: OrderStatus | str, actor: Actor) -> Order:
        """
        Move `order` to `target` on behalf of `actor`.

        Raises:
            InvalidTransition: pair not in ALLOWED_TRANSITIONS
                or off the order's shipping route
            NotCancellable: cancel after fulfilment started
            NotEligibleForReturn: return/refund request before delivery
        """
        order_number = order.order_number
        current = _as_status(order.status, order_number, str(order.status), str(target))
        target = _as_status(target, order_number, current.value, str(target))
        check_transition(current, target, order_number)
        if _off_route(order.shipping_method, target):
            raise InvalidTransition(
                order_number, current.value, target.value,
                detail=f"{order.shipping_method} order {order_number} cannot move to {target.value}",
            )

        snapshot = {field: getattr(order, field) for field in _TRACKED_FIELDS}
        order.status = target.value
        order.status_changed_at = utcnow()
        try:
            for hook in self._hooks:
                hook(order, current, target, actor)
        except Exception:
            for field, value in snapshot.items():
                setattr(order, field, value)
            logger.error(
                "Transition %s → %s for order %s rolled back: hook failed",
                current.value, target.value, order_number,
            )
            raise

        logger.info(
            "Order %s: %s → %s by %s:%s",
            order_number, current.value, target.value, actor.actor_type.value, actor.actor_id,
        )
        return order
