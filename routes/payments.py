from fastapi import APIRouter, Depends

from core.deps import get_order_store, get_provider_registry
from schemas.payment import PaymentStartResponse
from services import orders as order_service
from services.order_store import OrderStore
from services.providers import ProviderRegistry

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/{order_id}", response_model=PaymentStartResponse)
def start_payment(
    order_id: str,
    store: OrderStore = Depends(get_order_store),
    providers: ProviderRegistry = Depends(get_provider_registry),
):
    handle = order_service.start_payment(store, providers, order_id)
    order = order_service.get_order(store, order_id)
    return {
        "success": True,
        "order_id": order.id,
        "payment_method": order.payment_method,
        "external_id": handle.external_id,
        "checkout_url": handle.checkout_url,
        "expires_at": handle.expires_at,
        "client_secret": handle.client_secret,
    }
