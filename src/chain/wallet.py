"""Operator wallet — keypair loading and transaction signing.

Private key is loaded ONCE at startup and never logged or exposed.
Only the public key is shown in logs and __repr__.
"""

from __future__ import annotations

import json

import base58
from loguru import logger
from solders.hash import Hash  # type: ignore[import-untyped]
from solders.instruction import Instruction  # type: ignore[import-untyped]
from solders.keypair import Keypair  # type: ignore[import-untyped]
from solders.pubkey import Pubkey  # type: ignore[import-untyped]
from solders.transaction import Transaction  # type: ignore[import-untyped]

SECRET_KEY_LENGTH = 64


def _decode_secret(secret: str) -> bytes:
    """Accept a base58 secret key or a JSON byte array (solana-keygen format)."""
    secret = secret.strip()
    if secret.startswith("["):
        try:
            return bytes(json.loads(secret))
        except (ValueError, TypeError) as e:
            raise ValueError("Operator private key JSON array is malformed") from e
    try:
        return base58.b58decode(secret)
    except ValueError as e:
        raise ValueError("Operator private key is not valid base58") from e


class OperatorWallet:
    """Fee-payer keypair that sponsored the accounts and receives reclaimed rent.

    Security: private key is only accessible via .keypair property.
    """

    def __init__(self, private_key: str) -> None:
        if not private_key:
            raise ValueError("Operator private key is empty")

        raw = _decode_secret(private_key)
        if len(raw) != SECRET_KEY_LENGTH:
            raise ValueError(
                f"Operator private key must be {SECRET_KEY_LENGTH} bytes, got {len(raw)}"
            )
        self._keypair = Keypair.from_bytes(raw)
        logger.info(f"[WALLET] Loaded operator wallet: {self.pubkey_str}")

    def __repr__(self) -> str:
        return f"OperatorWallet(pubkey={self.pubkey_str})"

    @property
    def pubkey(self) -> Pubkey:
        return self._keypair.pubkey()

    @property
    def pubkey_str(self) -> str:
        return str(self._keypair.pubkey())

    @property
    def keypair(self) -> Keypair:
        return self._keypair

    def sign_transaction(self, instructions: list[Instruction], blockhash: Hash) -> Transaction:
        """Build a legacy transaction paid and signed by the operator."""
        return Transaction.new_signed_with_payer(
            instructions,
            self.pubkey,
            [self._keypair],
            blockhash,
        )
