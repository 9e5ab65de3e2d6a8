"""
flowfit/services/commitment.py

Staked step-goal commitments against the challenge contract.

Lifecycle: DRAFT -> INITIATING -> ACTIVE | FAILED

Flow of one attempt, strictly in this order:
1. Validate the user's input locally (no wallet access on failure)
2. Simulate initiateChallenge with the stake attached to learn the challenge id
3. Persist the intent record holding that prospective id
4. Resolve the custodial signing identity
5. Submit initiateChallenge naming the custodial address as delegate

Each step's side effect is safe on its own if a later step never runs. A
failed attempt is never resumed; retries start a fresh attempt and the
orphaned intent record is overwritten.
"""

import json
import re
from decimal import Decimal, InvalidOperation, localcontext
from typing import Any, Optional, Sequence

import structlog
from eth_utils import to_wei

from config import settings
from flowfit.constants import (
    CHALLENGE_INTENT_KEY,
    MAX_STAKE_DECIMALS,
    MAX_UINT256,
    STEP_GOAL_KEY,
    ZERO_ADDRESS,
)
from flowfit.errors import (
    ContractCallFailed,
    InputValidationError,
    PersistenceError,
    ProviderUnavailableError,
)
from flowfit.schemas import Commitment, CommitmentStatus
from flowfit.services.custodian import SigningKeyCustodian
from flowfit.services.persistence import KeyValueStore
from flowfit.services.wallet import INITIATE_CHALLENGE, BalanceMonitor, WalletProvider

logger = structlog.get_logger(__name__)

_DIGITS = re.compile(r"^\d+$")


def _parse_digits(raw: Any, message: str) -> Any:
    if isinstance(raw, str) and _DIGITS.match(raw.strip()):
        try:
            return int(raw.strip())
        except ValueError as exc:
            # Longer than the interpreter's int string conversion limit.
            raise InputValidationError(message) from exc
    return raw


def parse_goal_steps(raw: Any) -> int:
    """Positive integer step goal from an int or a digit string."""
    message = "Please enter a valid steps goal."
    if isinstance(raw, bool):
        raise InputValidationError(message)
    raw = _parse_digits(raw, message)
    if not isinstance(raw, int) or raw <= 0:
        raise InputValidationError(message)
    return raw


def parse_stake_amount(raw: Any) -> Decimal:
    """Positive, finite stake with at most wei precision."""
    if isinstance(raw, bool):
        raise InputValidationError("Please enter a valid stake amount.")
    try:
        amount = Decimal(str(raw).strip())
    except InvalidOperation as exc:
        raise InputValidationError("Please enter a valid stake amount.") from exc
    if not amount.is_finite() or amount <= 0:
        raise InputValidationError("Please enter a valid stake amount.")
    if -amount.normalize().as_tuple().exponent > MAX_STAKE_DECIMALS:
        raise InputValidationError(
            f"Stake amount supports at most {MAX_STAKE_DECIMALS} decimal places."
        )
    with localcontext() as ctx:
        ctx.prec = 100
        wei = amount.scaleb(MAX_STAKE_DECIMALS)
    if wei > MAX_UINT256:
        raise InputValidationError("Stake amount is too large.")
    return amount


def parse_committing_days(raw: Any, options: Sequence[int]) -> int:
    message = f"Committing days must be one of {', '.join(map(str, options))}."
    if isinstance(raw, bool):
        raise InputValidationError(message)
    raw = _parse_digits(raw, message)
    if not isinstance(raw, int) or raw not in options:
        raise InputValidationError(message)
    return raw


class CommitmentOrchestrator:
    """Drives one staked commitment attempt through its lifecycle."""

    def __init__(
        self,
        wallet: WalletProvider,
        custodian: SigningKeyCustodian,
        store: KeyValueStore,
        committing_days_options: Optional[Sequence[int]] = None,
    ) -> None:
        self._wallet = wallet
        self._custodian = custodian
        self._store = store
        self._days_options = tuple(
            committing_days_options or settings.committing_days_options
        )
        self.balance_monitor = BalanceMonitor()

    @property
    def wallet(self) -> WalletProvider:
        return self._wallet

    async def use_wallet(self, wallet: WalletProvider) -> Optional[Decimal]:
        """Swap the wallet provider and refresh the cached balance."""
        self._wallet = wallet
        return await self.balance_monitor.refresh(wallet)

    async def refresh_balance(self, force: bool = False) -> Optional[Decimal]:
        return await self.balance_monitor.refresh(self._wallet, force=force)

    def draft(self, goal_steps: Any, committing_days: Any, stake_amount: Any) -> Commitment:
        """Validate user input into a DRAFT commitment. Never touches the wallet."""
        commitment = Commitment(
            goal_steps=parse_goal_steps(goal_steps),
            committing_days=parse_committing_days(committing_days, self._days_options),
            stake_amount=parse_stake_amount(stake_amount),
        )
        logger.debug(
            "commitment_drafted",
            attempt_id=commitment.attempt_id,
            goal_steps=commitment.goal_steps,
            committing_days=commitment.committing_days,
            stake_amount=str(commitment.stake_amount),
        )
        return commitment

    async def set_goal(
        self, goal_steps: Any, committing_days: Any, stake_amount: Any
    ) -> Commitment:
        """Draft and initiate a new attempt in one call."""
        commitment = self.draft(goal_steps, committing_days, stake_amount)
        return await self.initiate(commitment)

    async def initiate(self, commitment: Commitment) -> Commitment:
        """
        Run a DRAFT commitment to ACTIVE, or mark it FAILED and raise.

        Raises InputValidationError or ProviderUnavailableError (commitment
        left as DRAFT), ContractCallFailed, PersistenceError or KeyCustodyError.

        An ACTIVE result with durable=False means the transaction was accepted
        but its record could not be saved; it will reload as FAILED, so the
        caller must surface tx_hash instead of offering a retry.
        """
        if commitment.status != CommitmentStatus.DRAFT:
            raise ValueError(
                "only DRAFT commitments can be initiated; use fresh_attempt() to retry"
            )
        # Commitments may be built without draft(); re-check before the wallet.
        parse_goal_steps(commitment.goal_steps)
        parse_stake_amount(commitment.stake_amount)
        parse_committing_days(commitment.committing_days, self._days_options)

        if not self._wallet.is_connected:
            logger.warning("commitment_wallet_disconnected", attempt_id=commitment.attempt_id)
            raise ProviderUnavailableError("Wallet is not connected.")

        log = logger.bind(attempt_id=commitment.attempt_id)
        days = commitment.committing_days
        value_wei = to_wei(commitment.stake_amount, "ether")
        commitment.status = CommitmentStatus.INITIATING

        # Step 2: simulate
        try:
            (pending_id,) = await self._wallet.simulate_call(
                INITIATE_CHALLENGE, [days, ZERO_ADDRESS], value_wei
            )
        except Exception as exc:
            commitment.status = CommitmentStatus.FAILED
            log.error("challenge_simulation_failed", error=str(exc))
            raise ContractCallFailed("Simulating the challenge failed.") from exc
        log.info("challenge_simulated", pending_challenge_id=pending_id)

        # Step 3: persist intent
        record = {
            "attempt_id": commitment.attempt_id,
            "challenge_id": str(pending_id),
            "goal_steps": commitment.goal_steps,
            "committing_days": days,
            "stake_amount": str(commitment.stake_amount),
            "status": CommitmentStatus.INITIATING.value,
            "tx_hash": None,
        }
        try:
            await self._store.set(CHALLENGE_INTENT_KEY, json.dumps(record))
        except PersistenceError as exc:
            commitment.status = CommitmentStatus.FAILED
            log.error("challenge_intent_persist_failed", error=str(exc))
            raise

        # Step 4: custodial identity
        try:
            identity = await self._custodian.get_or_create_identity(require_durable=True)
        except Exception as exc:
            commitment.status = CommitmentStatus.FAILED
            log.error("custodial_identity_failed", error=str(exc))
            await self._mark_intent_failed(record)
            raise

        # Step 5: submit
        try:
            tx_hash = await self._wallet.send_transaction(
                INITIATE_CHALLENGE, [days, identity.address], value_wei
            )
        except Exception as exc:
            commitment.status = CommitmentStatus.FAILED
            log.error("challenge_submit_failed", error=str(exc))
            await self._mark_intent_failed(record)
            raise ContractCallFailed("Submitting the challenge failed.") from exc

        commitment.challenge_id = pending_id
        commitment.tx_hash = tx_hash
        commitment.status = CommitmentStatus.ACTIVE
        log.info(
            "commitment_active",
            challenge_id=pending_id,
            tx_hash=tx_hash,
            delegate=identity.address,
        )

        record.update(status=CommitmentStatus.ACTIVE.value, tx_hash=tx_hash)
        try:
            await self._store.set(CHALLENGE_INTENT_KEY, json.dumps(record))
        except PersistenceError as exc:
            # The transaction is already accepted; on reload the record will
            # read as FAILED rather than ACTIVE.
            log.error("commitment_active_persist_failed", tx_hash=tx_hash, error=str(exc))
            return commitment
        commitment.durable = True

        try:
            await self._store.set(STEP_GOAL_KEY, str(commitment.goal_steps))
        except PersistenceError as exc:
            log.warning("step_goal_persist_failed", error=str(exc))

        return commitment

    async def load_commitment(self) -> Optional[Commitment]:
        """
        Rebuild the last persisted attempt.

        Only a record with status active, a challenge id and a transaction hash
        loads as ACTIVE; anything short of that loads as FAILED.
        """
        try:
            stored = await self._store.get(CHALLENGE_INTENT_KEY)
        except PersistenceError as exc:
            logger.warning("challenge_intent_read_failed", error=str(exc))
            return None
        if stored is None:
            return None

        try:
            record = json.loads(stored)
            commitment = Commitment(
                attempt_id=record["attempt_id"],
                goal_steps=record["goal_steps"],
                committing_days=record["committing_days"],
                stake_amount=Decimal(record["stake_amount"]),
                status=CommitmentStatus.FAILED,
                durable=True,
            )
            challenge_id = record.get("challenge_id")
            if challenge_id is not None:
                challenge_id = int(challenge_id)
        except (ValueError, KeyError, TypeError, InvalidOperation) as exc:
            logger.warning("challenge_intent_malformed", error=str(exc))
            return None

        tx_hash = record.get("tx_hash")
        if (
            record.get("status") == CommitmentStatus.ACTIVE.value
            and challenge_id is not None
            and tx_hash
        ):
            commitment.challenge_id = challenge_id
            commitment.tx_hash = tx_hash
            commitment.status = CommitmentStatus.ACTIVE
        else:
            logger.info(
                "challenge_intent_incomplete",
                attempt_id=commitment.attempt_id,
                recorded_status=record.get("status"),
            )
        return commitment

    async def _mark_intent_failed(self, record: dict) -> None:
        record["status"] = CommitmentStatus.FAILED.value
        try:
            await self._store.set(CHALLENGE_INTENT_KEY, json.dumps(record))
        except PersistenceError as exc:
            # Unmarked records still load as FAILED.
            logger.error(
                "challenge_intent_mark_failed",
                attempt_id=record["attempt_id"],
                error=str(exc),
            )
