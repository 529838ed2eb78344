import logging

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool

from core.deps import get_secret_store, get_state_machine
from schemas.webhook import Provider, WebhookAck
from services.order_state import OrderStateMachine
from services.secrets import SecretStore
from services.webhooks import HANDLERS

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


async def _dispatch(provider: Provider, request: Request, secrets: SecretStore, state_machine: OrderStateMachine) -> WebhookAck:
    # Signatures are computed over the exact bytes received
    raw_body = await request.body()
    handler = HANDLERS[provider](secrets, state_machine)
    return await run_in_threadpool(handler.handle, raw_body, request.headers)


@router.post("/stripe", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    secrets: SecretStore = Depends(get_secret_store),
    state_machine: OrderStateMachine = Depends(get_state_machine),
):
    return await _dispatch(Provider.STRIPE, request, secrets, state_machine)


@router.post("/coinbase", response_model=WebhookAck)
async def coinbase_webhook(
    request: Request,
    secrets: SecretStore = Depends(get_secret_store),
    state_machine: OrderStateMachine = Depends(get_state_machine),
):
    return await _dispatch(Provider.COINBASE, request, secrets, state_machine)


@router.post("/nowpayments", response_model=WebhookAck)
async def nowpayments_webhook(
    request: Request,
    secrets: SecretStore = Depends(get_secret_store),
    state_machine: OrderStateMachine = Depends(get_state_machine),
):
    return await _dispatch(Provider.NOWPAYMENTS, request, secrets, state_machine)
