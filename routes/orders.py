from fastapi import APIRouter, Depends, Query

from core.deps import get_order_store
from schemas.order import (
    OrderCreate,
    OrderCreateResponse,
    OrderDetailResponse,
    OrderListResponse,
    OrderOut,
)
from services import orders as order_service
from services.order_store import OrderStore

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("/", response_model=OrderCreateResponse, status_code=201)
def create_order(data: OrderCreate, store: OrderStore = Depends(get_order_store)):
    order = order_service.create_order(store, data)
    return {
        "success": True,
        "order_id": order.id,
        "order_number": order.order_number,
        "order": OrderOut.model_validate(order),
    }


@router.get("/", response_model=OrderListResponse)
def list_orders(user_id: str = Query(..., alias="userId"), store: OrderStore = Depends(get_order_store)):
    orders = order_service.list_orders_for_user(store, user_id)
    return {"success": True, "orders": [OrderOut.model_validate(o) for o in orders]}


@router.get("/{order_id}", response_model=OrderDetailResponse)
def get_order(order_id: str, store: OrderStore = Depends(get_order_store)):
    order = order_service.get_order(store, order_id)
    return {"success": True, "order": OrderOut.model_validate(order)}
