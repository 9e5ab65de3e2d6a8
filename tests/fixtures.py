"""
tests/fixtures.py

Shared test data, builders and in-memory fakes.
All tests must use these fixtures instead of hardcoding test values.
"""

from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from flowfit.errors import PersistenceError, WalletProviderError
from flowfit.schemas import RawActivitySample
from flowfit.services.custodian import SigningKeyCustodian
from flowfit.services.wallet import ContractFunction

# ── Test constants ──────────────────────────────────────────

TEST_PASSPHRASE: str = "correct horse battery staple"
TEST_ACCOUNT: str = "0x5B38Da6a701c568545dCfcB03FcB875f56beddC4"
TEST_CONTRACT: str = "0x9d7f74d0c41e726ec95884e0e97fa6129e3b5e99"
TEST_TX_HASH: str = "0x" + "ab" * 32
TEST_LEGACY_PRIVATE_KEY: str = "0x" + "4c" * 32
TEST_NOW: datetime = datetime(2024, 6, 15, 9, 0, 0, tzinfo=timezone.utc)


def build_sample(start: str, value: float) -> RawActivitySample:
    """Build a RawActivitySample from an ISO-8601 timestamp with offset."""
    return RawActivitySample(
        start_instant=datetime.fromisoformat(start.replace("Z", "+00:00")),
        value=value,
    )


def build_custodian(store: "InMemoryStore", passphrase: str = TEST_PASSPHRASE) -> SigningKeyCustodian:
    """Custodian with a cheap KDF so keystore round-trips stay fast."""
    return SigningKeyCustodian(store, passphrase=passphrase, kdf="pbkdf2", iterations=2)


# ── Fakes ───────────────────────────────────────────────────


class InMemoryStore:
    """KeyValueStore stand-in with failure injection and an operation log."""

    def __init__(self, events: Optional[list] = None) -> None:
        self.data: dict[str, str] = {}
        self.fail_writes: set[str] = set()
        self.fail_reads: bool = False
        self.events = events if events is not None else []

    async def get(self, key: str) -> str | None:
        if self.fail_reads:
            raise PersistenceError(f"failed to read {key!r}")
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        if key in self.fail_writes:
            raise PersistenceError(f"failed to write {key!r}")
        self.events.append(("set", key))
        self.data[key] = value

    async def delete(self, key: str) -> None:
        self.events.append(("delete", key))
        self.data.pop(key, None)


class RecordingWalletProvider:
    """WalletProvider fake that records every call it receives."""

    def __init__(
        self,
        connected: bool = True,
        simulate_result: int = 7,
        simulate_error: Optional[Exception] = None,
        send_error: Optional[Exception] = None,
        balance_wei: int = 1_500_000_000_000_000_000,
        events: Optional[list] = None,
    ) -> None:
        self.connected = connected
        self.simulate_result = simulate_result
        self.simulate_error = simulate_error
        self.send_error = send_error
        self.balance_wei = balance_wei
        self.calls: list[tuple[str, Any]] = []
        self.events = events if events is not None else []

    @property
    def is_connected(self) -> bool:
        return self.connected

    def _record(self, name: str, payload: Any) -> None:
        self.calls.append((name, payload))
        self.events.append((name, payload))

    async def get_address(self) -> str:
        self._record("get_address", None)
        return TEST_ACCOUNT

    async def get_balance(self, address: str) -> int:
        self._record("get_balance", address)
        return self.balance_wei

    async def simulate_call(
        self, function: ContractFunction, args: Sequence[Any], value_wei: int = 0
    ) -> tuple:
        self._record("simulate_call", (function.name, list(args), value_wei))
        if self.simulate_error is not None:
            raise self.simulate_error
        return (self.simulate_result,)

    async def send_transaction(
        self, function: ContractFunction, args: Sequence[Any], value_wei: int = 0
    ) -> str:
        self._record("send_transaction", (function.name, list(args), value_wei))
        if self.send_error is not None:
            raise self.send_error
        return TEST_TX_HASH

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


def rpc_failure(message: str = "execution reverted") -> WalletProviderError:
    return WalletProviderError(message, code=3)
