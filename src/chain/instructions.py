"""Program IDs and the SPL Token close-account instruction."""

from __future__ import annotations

from solders.instruction import AccountMeta, Instruction  # type: ignore[import-untyped]
from solders.pubkey import Pubkey  # type: ignore[import-untyped]

# SPL constants
TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
TOKEN_2022_PROGRAM_ID = Pubkey.from_string("TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string(
    "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"
)
SYSTEM_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")
MEMO_PROGRAM_IDS = frozenset(
    {
        "MemoSq4gqABAXKb96qnH8TysNcWxMyWCqXgDLGmfcHr",
        "Memo1UhkJRfHyvLMcVucJwxXeuD728EqVDDwQDxFMNo",
    }
)

TOKEN_PROGRAM_IDS = frozenset({str(TOKEN_PROGRAM_ID), str(TOKEN_2022_PROGRAM_ID)})

# SPL Token instruction tags
CLOSE_ACCOUNT_TAG = 9

LAMPORTS_PER_SOL = 1_000_000_000


def lamports_to_sol(lamports: int) -> float:
    return lamports / LAMPORTS_PER_SOL


def is_valid_pubkey(address: str) -> bool:
    """True if address is a well-formed base58 public key."""
    try:
        Pubkey.from_string(address)
    except (ValueError, TypeError):
        return False
    return True


def close_account_instruction(
    account: str | Pubkey,
    destination: Pubkey,
    authority: Pubkey,
    program_id: str | Pubkey = TOKEN_PROGRAM_ID,
) -> Instruction:
    """Build SPL Token CloseAccount.

    Accounts: [account (w), destination (w), authority (signer)].
    Works for Token and Token-2022 (same layout).
    """
    account_key = Pubkey.from_string(account) if isinstance(account, str) else account
    program = Pubkey.from_string(program_id) if isinstance(program_id, str) else program_id
    return Instruction(
        program,
        bytes([CLOSE_ACCOUNT_TAG]),
        [
            AccountMeta(pubkey=account_key, is_signer=False, is_writable=True),
            AccountMeta(pubkey=destination, is_signer=False, is_writable=True),
            AccountMeta(pubkey=authority, is_signer=True, is_writable=False),
        ],
    )
