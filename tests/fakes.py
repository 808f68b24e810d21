"""In-memory chain double and transaction builders shared by the tests."""

from __future__ import annotations

from collections.abc import Callable

from solders.hash import Hash  # type: ignore[import-untyped]
from solders.pubkey import Pubkey  # type: ignore[import-untyped]
from solders.transaction import Transaction  # type: ignore[import-untyped]

from src.chain.instructions import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    SYSTEM_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
)
from src.chain.models import (
    AccountInfo,
    ParsedInstruction,
    ParsedTransaction,
    SignatureInfo,
    SimulationResult,
)
from src.reclaim.auditor import Auditor
from src.reclaim.pipeline import ReclaimPipeline
from src.reclaim.reclaimer import Reclaimer
from src.reclaim.scanner import Scanner
from src.reclaim.sponsorship import SponsorshipClassifier

TOKEN_PROGRAM = str(TOKEN_PROGRAM_ID)
ATA_PROGRAM = str(ASSOCIATED_TOKEN_PROGRAM_ID)
SYSTEM_PROGRAM = str(SYSTEM_PROGRAM_ID)
TOKEN_ACCOUNT_RENT = 2_039_280
OLD_BLOCK_TIME = 1_600_000_000  # Sep 2020


def new_address() -> str:
    return str(Pubkey.new_unique())


def token_account_info(
    address: str,
    *,
    owner: str,
    mint: str,
    amount: int = 0,
    lamports: int = TOKEN_ACCOUNT_RENT,
    program: str = TOKEN_PROGRAM,
    close_authority: str | None = None,
) -> AccountInfo:
    info = {
        "mint": mint,
        "owner": owner,
        "tokenAmount": {"amount": str(amount), "decimals": 6, "uiAmount": amount / 1e6},
        "state": "initialized",
        "isNative": False,
    }
    if close_authority:
        info["closeAuthority"] = close_authority
    return AccountInfo(
        address=address,
        lamports=lamports,
        owner=program,
        data={"program": "spl-token", "parsed": {"type": "account", "info": info}, "space": 165},
    )


def system_account_info(address: str, lamports: int) -> AccountInfo:
    return AccountInfo(address=address, lamports=lamports, owner=SYSTEM_PROGRAM, data=["", "base64"])


def init_account_tx(
    signature: str,
    *,
    fee_payer: str,
    account: str,
    owner: str,
    mint: str,
    rent: int = TOKEN_ACCOUNT_RENT,
    block_time: int = OLD_BLOCK_TIME,
    ix_type: str = "initializeAccount3",
    extra: list[ParsedInstruction] | None = None,
) -> ParsedTransaction:
    """createAccount + InitializeAccount paid by ``fee_payer``."""
    return ParsedTransaction(
        signature=signature,
        slot=1,
        block_time=block_time,
        account_keys=[fee_payer, account, mint, SYSTEM_PROGRAM, TOKEN_PROGRAM],
        instructions=[
            ParsedInstruction(
                program_id=SYSTEM_PROGRAM,
                program="system",
                parsed={
                    "type": "createAccount",
                    "info": {"source": fee_payer, "newAccount": account, "lamports": rent},
                },
            ),
            ParsedInstruction(
                program_id=TOKEN_PROGRAM,
                program="spl-token",
                parsed={"type": ix_type, "info": {"account": account, "mint": mint, "owner": owner}},
            ),
            *(extra or []),
        ],
        pre_balances=[1_000_000_000, 0, 1_461_600, 1, 1],
        post_balances=[1_000_000_000 - rent - 5000, rent, 1_461_600, 1, 1],
        fee=5000,
    )


def ata_create_tx(
    signature: str,
    *,
    fee_payer: str,
    account: str,
    wallet: str,
    mint: str,
    rent: int = TOKEN_ACCOUNT_RENT,
    idempotent: bool = False,
    pre_existing: bool = False,
) -> ParsedTransaction:
    """Associated token account creation; the token init is an inner instruction."""
    return ParsedTransaction(
        signature=signature,
        block_time=OLD_BLOCK_TIME,
        account_keys=[fee_payer, account, wallet, mint, SYSTEM_PROGRAM, TOKEN_PROGRAM, ATA_PROGRAM],
        instructions=[
            ParsedInstruction(
                program_id=ATA_PROGRAM,
                program="spl-associated-token-account",
                parsed={
                    "type": "createIdempotent" if idempotent else "create",
                    "info": {"source": fee_payer, "account": account, "wallet": wallet, "mint": mint},
                },
            )
        ],
        inner_instructions=[
            ParsedInstruction(
                program_id=TOKEN_PROGRAM,
                program="spl-token",
                parsed={"type": "initializeAccount3", "info": {"account": account, "mint": mint, "owner": wallet}},
            )
        ],
        pre_balances=[1_000_000_000, rent if pre_existing else 0, 0, 1_461_600, 1, 1, 1],
        post_balances=[1_000_000_000 - rent - 5000, rent, 0, 1_461_600, 1, 1, 1],
    )


def sig(signature: str, block_time: int | None = OLD_BLOCK_TIME, err: dict | None = None) -> SignatureInfo:
    return SignatureInfo(signature=signature, slot=1, block_time=block_time, err=err)


class FakeChain:
    """Duck-typed stand-in for SolanaRpcClient backed by dicts."""

    def __init__(self) -> None:
        self.signatures: dict[str, list[SignatureInfo]] = {}
        self.transactions: dict[str, ParsedTransaction | Exception] = {}
        self.accounts: dict[str, AccountInfo] = {}
        self.account_errors: dict[str, Exception] = {}
        self.simulation = SimulationResult()
        self.send_error: Exception | None = None
        self.page_error: Exception | None = None

        self.signature_requests: list[tuple[str, int, str | None]] = []
        self.transaction_requests: list[str] = []
        self.simulated: list[Transaction] = []
        self.sent: list[Transaction] = []
        self.after_simulate: Callable[[int], None] | None = None
        self.closed = False

    async def get_signatures_for_address(
        self, address: str, *, limit: int = 1000, before: str | None = None
    ) -> list[SignatureInfo]:
        self.signature_requests.append((address, limit, before))
        if self.page_error is not None:
            raise self.page_error
        history = self.signatures.get(address, [])
        start = 0
        if before is not None:
            start = [s.signature for s in history].index(before) + 1
        return history[start : start + limit]

    async def get_parsed_transaction(self, signature: str) -> ParsedTransaction | None:
        self.transaction_requests.append(signature)
        tx = self.transactions.get(signature)
        if isinstance(tx, Exception):
            raise tx
        return tx

    async def get_account_info(self, address: str) -> AccountInfo | None:
        if address in self.account_errors:
            raise self.account_errors[address]
        return self.accounts.get(address)

    async def get_latest_blockhash(self) -> Hash:
        return Hash.default()

    async def simulate_transaction(self, tx: Transaction) -> SimulationResult:
        self.simulated.append(tx)
        if self.after_simulate is not None:
            self.after_simulate(len(self.simulated))
        return self.simulation

    async def send_and_confirm_transaction(self, tx: Transaction) -> str:
        self.sent.append(tx)
        if self.send_error is not None:
            raise self.send_error
        return f"liveSig{len(self.sent)}"

    async def close(self) -> None:
        self.closed = True


def seed_sponsored(
    chain: FakeChain, operator: str, count: int, *, amount: int = 0, start: int = 0
) -> list[str]:
    """Put ``count`` operator-funded token accounts on chain and in the operator's history.

    Returned newest first, matching scan order.
    """
    addresses = []
    history = chain.signatures.setdefault(operator, [])
    for i in range(start, start + count):
        address, owner, mint = new_address(), new_address(), new_address()
        name = f"create{i}"
        chain.transactions[name] = init_account_tx(
            name, fee_payer=operator, account=address, owner=owner, mint=mint
        )
        chain.accounts[address] = token_account_info(address, owner=owner, mint=mint, amount=amount)
        history.insert(0, sig(name))
        addresses.insert(0, address)
    return addresses


def build_pipeline(
    chain: FakeChain, wallet, safety, ledger, *, dry_run: bool = True, alerter=None
) -> ReclaimPipeline:
    """ReclaimPipeline over the fake chain with no pacing delays."""
    return ReclaimPipeline(
        rpc=chain,
        wallet=wallet,
        safety=safety,
        ledger=ledger,
        scanner=Scanner(chain, ledger, SponsorshipClassifier.build(), request_delay_ms=0, signature_cap=0),
        auditor=Auditor(chain, safety, ledger),
        reclaimer=Reclaimer(chain, wallet, safety, ledger, dry_run=dry_run),
        alerter=alerter,
        network="devnet",
        inactivity_days=30,
    )
