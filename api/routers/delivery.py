"""Delivery quote API endpoints."""

from fastapi import APIRouter

from schemas import (
    AddressIn, DeliveryOptionsResponse, ShippingCostResponse, StoreResponse,
)
from services.quotes import STORE_LOCATIONS, get_quotes, get_shipping_cost

router = APIRouter()


@router.post("/quotes", response_model=DeliveryOptionsResponse)
async def delivery_quotes(address: AddressIn):
    """All vehicle quotes for an address, cheapest first, plus free store pickup."""
    options = await get_quotes(address.to_address())
    return DeliveryOptionsResponse.model_validate(options)


@router.post("/shipping-cost", response_model=ShippingCostResponse)
async def shipping_cost(address: AddressIn):
    """Cheapest delivery fare and time window, for the checkout summary."""
    return ShippingCostResponse(**await get_shipping_cost(address.to_address()))


@router.get("/stores", response_model=list[StoreResponse])
async def list_stores():
    return [StoreResponse.model_validate(store) for store in STORE_LOCATIONS]
