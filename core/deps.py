"""FastAPI dependencies wiring the order services to the request."""
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from core.db import get_db
from services.blockchain import BlockchainRegistrar
from services.notifications import NotificationSender
from services.order_state import OrderStateMachine
from services.order_store import OrderStore
from services.providers import ProviderRegistry
from services.secrets import SecretStore


def get_order_store(db: Session = Depends(get_db)) -> OrderStore:
    return OrderStore(db)


def get_provider_registry(request: Request) -> ProviderRegistry:
    return request.app.state.providers


def get_secret_store(request: Request) -> SecretStore:
    return request.app.state.secrets


def get_notifier(request: Request) -> NotificationSender:
    return request.app.state.notifier


def get_registrar(request: Request) -> BlockchainRegistrar:
    return request.app.state.registrar


def get_state_machine(
    store: OrderStore = Depends(get_order_store),
    notifier: NotificationSender = Depends(get_notifier),
    registrar: BlockchainRegistrar = Depends(get_registrar),
) -> OrderStateMachine:
    return OrderStateMachine(store, notifier, registrar)
