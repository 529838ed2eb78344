import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import requests

from core.config import Settings
from core.exceptions import SideEffectError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegistrationResult:
    success: bool
    transaction_id: Optional[str] = None
    network: Optional[str] = None
    message: Optional[str] = None


class BlockchainRegistrar(Protocol):
    def register(self, unique_code: str, metadata: Dict[str, Any]) -> RegistrationResult: ...


class HttpBlockchainRegistrar:
    """
    Registers a redemption code with an external ledger API.

    Registration is optional enrichment: when no API key is configured the
    registrar reports ``success=False`` without making a request.
    """

    def __init__(self, api_url: str, api_key: str, network: str = "ethereum", timeout: int = 10):
        self.api_url = api_url
        self.api_key = api_key
        self.network = network
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpBlockchainRegistrar":
        return cls(
            api_url=settings.BLOCKCHAIN_API_URL,
            api_key=settings.BLOCKCHAIN_API_KEY,
            network=settings.BLOCKCHAIN_NETWORK,
            timeout=settings.BLOCKCHAIN_TIMEOUT_SECONDS,
        )

    def register(self, unique_code: str, metadata: Dict[str, Any]) -> RegistrationResult:
        if not self.api_key:
            return RegistrationResult(success=False, network=self.network, message="Blockchain registration disabled")

        try:
            resp = requests.post(
                self.api_url,
                json={"code": unique_code, "metadata": metadata, "network": self.network},
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
            )
            resp.raise_for_status()
            tx_id = resp.json().get("transactionId")
        except (requests.RequestException, ValueError, AttributeError) as e:
            raise SideEffectError(f"Blockchain registration failed: {e}") from e

        if not tx_id:
            raise SideEffectError("Blockchain registration returned no transaction id")
        return RegistrationResult(success=True, transaction_id=tx_id, network=self.network)
