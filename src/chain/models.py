"""Pydantic models for Solana JSON-RPC responses (jsonParsed encoding)."""

from typing import Any

from pydantic import BaseModel


class SignatureInfo(BaseModel):
    """Entry of getSignaturesForAddress."""

    signature: str
    slot: int = 0
    block_time: int | None = None  # unix seconds, None if the node doesn't know
    err: dict | str | None = None  # non-None means failed


class ParsedInstruction(BaseModel):
    """Instruction as returned by jsonParsed encoding.

    Known programs come back with ``parsed`` set (a dict, or a plain string
    for the memo program). Unknown programs only carry raw ``accounts``/``data``.
    """

    program_id: str
    program: str = ""
    parsed: dict | str | None = None
    accounts: list[str] = []
    data: str = ""

    @property
    def type(self) -> str | None:
        if isinstance(self.parsed, dict):
            return self.parsed.get("type")
        return None

    @property
    def info(self) -> dict[str, Any]:
        if isinstance(self.parsed, dict):
            info = self.parsed.get("info")
            if isinstance(info, dict):
                return info
        return {}


class ParsedTransaction(BaseModel):
    """Confirmed transaction from getTransaction (jsonParsed)."""

    signature: str
    slot: int = 0
    block_time: int | None = None
    account_keys: list[str] = []
    instructions: list[ParsedInstruction] = []
    inner_instructions: list[ParsedInstruction] = []
    pre_balances: list[int] = []
    post_balances: list[int] = []
    fee: int = 0
    err: dict | str | None = None
    log_messages: list[str] = []

    @property
    def fee_payer(self) -> str:
        """First account key is always the fee payer."""
        return self.account_keys[0] if self.account_keys else ""

    @property
    def all_instructions(self) -> list[ParsedInstruction]:
        return [*self.instructions, *self.inner_instructions]

    def pre_balance_of(self, address: str) -> int:
        return _balance_at(self.account_keys, self.pre_balances, address)

    def post_balance_of(self, address: str) -> int:
        return _balance_at(self.account_keys, self.post_balances, address)


def _balance_at(keys: list[str], balances: list[int], address: str) -> int:
    try:
        idx = keys.index(address)
    except ValueError:
        return 0
    return balances[idx] if idx < len(balances) else 0


class AccountInfo(BaseModel):
    """Result of getAccountInfo (jsonParsed)."""

    address: str
    lamports: int = 0
    owner: str = ""  # owning program
    executable: bool = False
    data: Any = None  # dict for parsed accounts, [base64, encoding] otherwise

    @property
    def parsed(self) -> dict[str, Any] | None:
        if isinstance(self.data, dict):
            parsed = self.data.get("parsed")
            if isinstance(parsed, dict):
                return parsed
        return None


class TokenAccountInfo(BaseModel):
    """SPL token account state (Token or Token-2022)."""

    address: str
    program_id: str
    mint: str = ""
    owner: str = ""
    amount: int = 0  # raw units
    decimals: int = 0
    close_authority: str | None = None
    state: str = "initialized"
    is_native: bool = False
    lamports: int = 0


class SimulationResult(BaseModel):
    """Result of simulateTransaction."""

    err: dict | str | None = None
    logs: list[str] = []
    units_consumed: int | None = None

    @property
    def ok(self) -> bool:
        return self.err is None
