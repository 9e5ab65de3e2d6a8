"""
flowfit/services/wallet.py

Wallet-provider capability used by the commitment flow.

- WalletProvider: the interface the orchestrator depends on
- JsonRpcWalletProvider: Ethereum JSON-RPC over httpx; the connected wallet
  (node account or bridged wallet session) signs eth_sendTransaction
- BalanceMonitor: cached native-currency balance, refreshed on provider or
  connection change
"""

import itertools
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional, Protocol, Sequence

import httpx
import structlog
from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import from_wei, function_signature_to_4byte_selector

from config import settings
from flowfit.errors import WalletProviderError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ContractFunction:
    """ABI description of one contract function."""

    name: str
    input_types: tuple[str, ...]
    output_types: tuple[str, ...] = ()

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.input_types)})"

    def encode_call(self, args: Sequence[Any]) -> str:
        selector = function_signature_to_4byte_selector(self.signature)
        return "0x" + (selector + encode(list(self.input_types), list(args))).hex()

    def decode_result(self, data: str) -> tuple:
        raw = bytes.fromhex(data[2:] if data.startswith("0x") else data)
        return decode(list(self.output_types), raw)


# initiateChallenge(uint256 numberOfDays, address delegate) payable returns (uint256)
INITIATE_CHALLENGE = ContractFunction(
    "initiateChallenge", ("uint256", "address"), ("uint256",)
)


class WalletProvider(Protocol):
    @property
    def is_connected(self) -> bool:
        ...

    async def get_address(self) -> str:
        ...

    async def get_balance(self, address: str) -> int:
        """Native balance in wei."""
        ...

    async def simulate_call(
        self, function: ContractFunction, args: Sequence[Any], value_wei: int = 0
    ) -> tuple:
        """Read-only call; returns the decoded outputs."""
        ...

    async def send_transaction(
        self, function: ContractFunction, args: Sequence[Any], value_wei: int = 0
    ) -> str:
        """Sign and submit a state-changing call; returns the transaction hash."""
        ...


class JsonRpcWalletProvider:
    """WalletProvider backed by an Ethereum JSON-RPC endpoint."""

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        contract_address: Optional[str] = None,
        account: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._rpc_url = rpc_url or settings.rpc_url
        self._contract_address = contract_address or settings.challenge_contract_address
        self._account = account
        self._timeout = timeout if timeout is not None else settings.rpc_timeout_seconds
        self._transport = transport
        self._ids = itertools.count(1)

    @property
    def is_connected(self) -> bool:
        return self._account is not None

    async def connect(self) -> Optional[str]:
        """Adopt the first account the endpoint exposes."""
        accounts = await self._rpc("eth_accounts", [])
        self._account = accounts[0] if accounts else None
        logger.info("wallet_connected", account=self._account)
        return self._account

    def disconnect(self) -> None:
        self._account = None

    async def get_address(self) -> str:
        if self._account is None:
            raise WalletProviderError("wallet is not connected")
        return self._account

    async def get_balance(self, address: str) -> int:
        result = await self._rpc("eth_getBalance", [address, "latest"])
        return int(result, 16)

    async def simulate_call(
        self, function: ContractFunction, args: Sequence[Any], value_wei: int = 0
    ) -> tuple:
        result = await self._rpc(
            "eth_call", [self._build_tx(function, args, value_wei), "latest"]
        )
        try:
            return function.decode_result(result)
        except (DecodingError, ValueError) as exc:
            logger.error(
                "contract_result_undecodable", function=function.name, error=str(exc)
            )
            raise WalletProviderError(f"undecodable {function.name} result") from exc

    async def send_transaction(
        self, function: ContractFunction, args: Sequence[Any], value_wei: int = 0
    ) -> str:
        tx = self._build_tx(function, args, value_wei)
        tx["type"] = "0x0"  # legacy transaction; Flow EVM gas pricing
        return await self._rpc("eth_sendTransaction", [tx])

    def _build_tx(
        self, function: ContractFunction, args: Sequence[Any], value_wei: int
    ) -> dict[str, str]:
        if self._account is None:
            raise WalletProviderError("wallet is not connected")
        if not self._contract_address:
            raise WalletProviderError("challenge contract address is not configured")
        return {
            "from": self._account,
            "to": self._contract_address,
            "data": function.encode_call(args),
            "value": hex(value_wei),
        }

    async def _rpc(self, method: str, params: list) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(self._rpc_url, json=payload)
                response.raise_for_status()
                body = response.json()
        except httpx.TimeoutException as exc:
            logger.warning("rpc_timeout", method=method, url=self._rpc_url)
            raise WalletProviderError(f"{method} timed out") from exc
        except httpx.HTTPStatusError as exc:
            logger.error(
                "rpc_http_error", method=method, status=exc.response.status_code
            )
            raise WalletProviderError(
                f"{method} failed with HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("rpc_transport_error", method=method, error=str(exc))
            raise WalletProviderError(f"{method} failed: {exc}") from exc

        if "error" in body:
            error = body["error"] or {}
            logger.warning(
                "rpc_error_response",
                method=method,
                code=error.get("code"),
                message=error.get("message"),
            )
            raise WalletProviderError(
                error.get("message", f"{method} failed"), code=error.get("code")
            )
        return body.get("result")


class BalanceMonitor:
    """
    Native-currency balance of the connected account.

    refresh() only queries the provider when the provider reference or its
    connection state changed since the last refresh, or when forced. While
    disconnected the balance is None. A failed query keeps the previous value
    only for the same provider.
    """

    def __init__(self) -> None:
        self.balance: Optional[Decimal] = None
        self._provider: Optional[WalletProvider] = None
        self._connected: Optional[bool] = None

    async def refresh(
        self, provider: Optional[WalletProvider], force: bool = False
    ) -> Optional[Decimal]:
        connected = provider is not None and provider.is_connected
        if not force and provider is self._provider and connected == self._connected:
            return self.balance

        if provider is not self._provider:
            # Never show one account's balance under another provider.
            self.balance = None
        self._provider = provider
        self._connected = connected
        if not connected:
            self.balance = None
            return None

        try:
            address = await provider.get_address()
            wei = await provider.get_balance(address)
        except WalletProviderError as exc:
            # Retry on the next refresh instead of caching the failure.
            self._connected = None
            logger.warning("balance_query_failed", error=str(exc))
            return self.balance

        self.balance = Decimal(from_wei(wei, "ether"))
        logger.info("balance_refreshed", address=address, balance=str(self.balance))
        return self.balance
