"""
flowfit/services/custodian.py

Custody of the app's local signing identity.

Exactly one key pair exists per installation. It is created lazily, stored as
an encrypted Web3 Secret Storage keystore (never as plaintext), and reused on
every later call. A plaintext key left by older builds under the legacy key is
imported once, re-stored encrypted and then removed.

Known limitation: there is no lock around creation. Two flows calling
get_or_create_identity() concurrently in one session can both generate a key;
the last successful write is the one that survives.
"""

import asyncio
import json
from typing import Optional

import structlog
from eth_account import Account

from config import settings
from flowfit.constants import CUSTODIAL_KEYSTORE_KEY, LEGACY_PRIVATE_KEY_KEY
from flowfit.errors import KeyCustodyError, PersistenceError
from flowfit.schemas import SigningIdentity
from flowfit.services.persistence import KeyValueStore

logger = structlog.get_logger(__name__)


class SigningKeyCustodian:
    """Creates, encrypts, persists and recovers the custodial signing key."""

    def __init__(
        self,
        store: KeyValueStore,
        passphrase: Optional[str] = None,
        kdf: Optional[str] = None,
        iterations: Optional[int] = None,
    ) -> None:
        self._store = store
        self._passphrase = (
            passphrase if passphrase is not None else settings.keystore_passphrase
        )
        self._kdf = kdf or settings.keystore_kdf
        self._iterations = (
            iterations if iterations is not None else settings.keystore_iterations
        )

    async def get_or_create_identity(
        self, require_durable: bool = True
    ) -> SigningIdentity:
        """
        Return the persisted identity, creating and persisting one if absent.

        A freshly created identity is only marked durable once the encrypted
        keystore has been written. If that write fails, KeyCustodyError is
        raised when require_durable is set; otherwise an ephemeral identity
        (durable=False) is returned and the next call tries again.

        Read failures propagate: an unreadable store must not be mistaken for
        an empty one, or the existing key would be silently replaced.
        """
        if not self._passphrase:
            raise KeyCustodyError("keystore passphrase is not configured")

        stored = await self._store.get(CUSTODIAL_KEYSTORE_KEY)
        if stored is not None:
            return await self._decrypt(stored)

        legacy = await self._store.get(LEGACY_PRIVATE_KEY_KEY)
        if legacy is not None:
            account = self._import_legacy(legacy)
            origin = "legacy_plaintext"
        else:
            account = Account.create()
            origin = "generated"

        return await self._persist(account, origin, require_durable)

    async def _decrypt(self, keystore_json: str) -> SigningIdentity:
        try:
            private_key = await asyncio.to_thread(
                Account.decrypt, keystore_json, self._passphrase
            )
        except (ValueError, KeyError, TypeError) as exc:
            logger.error("custodial_key_decrypt_failed", error=str(exc))
            raise KeyCustodyError("stored keystore could not be decrypted") from exc

        account = Account.from_key(private_key)
        logger.debug("custodial_key_loaded", address=account.address)
        return SigningIdentity(
            private_key=bytes(account.key), address=account.address, durable=True
        )

    def _import_legacy(self, plaintext: str):
        try:
            return Account.from_key(plaintext)
        except ValueError as exc:
            logger.error("legacy_key_malformed", error=str(exc))
            raise KeyCustodyError("legacy plaintext key is malformed") from exc

    async def _persist(
        self, account, origin: str, require_durable: bool
    ) -> SigningIdentity:
        keystore = await asyncio.to_thread(
            Account.encrypt,
            account.key,
            self._passphrase,
            kdf=self._kdf,
            iterations=self._iterations,
        )

        try:
            await self._store.set(CUSTODIAL_KEYSTORE_KEY, json.dumps(keystore))
        except PersistenceError as exc:
            logger.warning(
                "custodial_key_persist_failed",
                address=account.address,
                origin=origin,
                error=str(exc),
            )
            if require_durable:
                raise KeyCustodyError("custodial key could not be persisted") from exc
            return SigningIdentity(
                private_key=bytes(account.key), address=account.address, durable=False
            )

        logger.info("custodial_key_persisted", address=account.address, origin=origin)

        if origin == "legacy_plaintext":
            try:
                await self._store.delete(LEGACY_PRIVATE_KEY_KEY)
            except PersistenceError as exc:
                # Encrypted copy is authoritative from now on; the plaintext is
                # never read again but still sits in the store.
                logger.error("legacy_key_delete_failed", error=str(exc))

        return SigningIdentity(
            private_key=bytes(account.key), address=account.address, durable=True
        )
