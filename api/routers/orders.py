"""Order management API endpoints."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_db
from models.order import OrderStatus
from schemas import (
    AllowedTransitionsResponse, AutoCompleteResponse, OrderCreate,
    OrderDetailResponse, OrderResponse, StatusTransitionRequest,
    VerifyReceiptRequest, VerifyReceiptResponse,
)
from services.lifecycle import Actor, allowed_targets
from services.orders import (
    CheckoutError, OrderNotFound, auto_complete_orders, create_order,
    get_order_by_number, list_orders, transition_order, verify_receipt,
)

router = APIRouter()


@router.post("/", response_model=OrderResponse)
async def place_order(data: OrderCreate, db: AsyncSession = Depends(get_db)):
    """Create a new order in status `ordered`."""
    try:
        return await create_order(db, data)
    except CheckoutError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/", response_model=list[OrderResponse])
async def get_orders(
    status: OrderStatus | None = None,
    customer_id: str | None = None,
    skip: int = 0,
    limit: int = 50,
    db: AsyncSession = Depends(get_db),
):
    """List orders with optional status/customer filter."""
    return await list_orders(
        db,
        status=status.value if status else None,
        customer_id=customer_id,
        skip=skip,
        limit=limit,
    )


@router.post("/verify", response_model=VerifyReceiptResponse)
async def verify_order_receipt(data: VerifyReceiptRequest, db: AsyncSession = Depends(get_db)):
    """Customer confirms receipt of a delivered or picked-up order."""
    try:
        order, already = await verify_receipt(
            db,
            order_number=data.order_number,
            verification_code=data.verification_code,
            email=data.email,
        )
    except CheckoutError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except OrderNotFound:
        raise HTTPException(status_code=404, detail="Order not found or email does not match")

    return VerifyReceiptResponse(
        order_number=order.order_number,
        status=order.status,
        already_verified=already,
        message="Order already verified" if already else "Order verified successfully!",
    )


@router.post("/auto-complete", response_model=AutoCompleteResponse)
async def run_auto_complete(db: AsyncSession = Depends(get_db)):
    """Complete delivered/picked-up orders left untouched past the grace period."""
    completed = await auto_complete_orders(db)
    return AutoCompleteResponse(completed=completed, count=len(completed))


@router.get("/{order_number}", response_model=OrderDetailResponse)
async def get_order(order_number: str, db: AsyncSession = Depends(get_db)):
    """Get order by number with items and status history."""
    order = await get_order_by_number(db, order_number)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.get("/{order_number}/transitions", response_model=AllowedTransitionsResponse)
async def get_allowed_transitions(order_number: str, db: AsyncSession = Depends(get_db)):
    """Statuses this order may move to next."""
    order = await get_order_by_number(db, order_number)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return AllowedTransitionsResponse(
        order_number=order.order_number,
        status=order.status,
        version=order.version,
        allowed=allowed_targets(order.status, order.shipping_method),
    )


@router.patch("/{order_number}/status", response_model=OrderResponse)
async def update_order_status(
    order_number: str,
    data: StatusTransitionRequest,
    db: AsyncSession = Depends(get_db),
):
    """Apply a lifecycle transition; rejected transitions return 409."""
    try:
        return await transition_order(
            db,
            order_number,
            data.status,
            Actor(data.actor_type, data.actor_id),
            expected_version=data.expected_version,
            note=data.note,
            details={
                "tracking_number": data.tracking_number,
                "courier_name": data.courier_name,
            },
        )
    except OrderNotFound:
        raise HTTPException(status_code=404, detail="Order not found")
