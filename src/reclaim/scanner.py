"""Scanner — replays the operator's transaction history to find sponsored accounts.

Flow:
1. getSignaturesForAddress newest-first, cursor = oldest signature of the last page
2. getTransaction (jsonParsed) per signature, fixed delay between fetches
3. Operator-paid transactions → token account initializations → candidates

A failed fetch/parse of one transaction is a skip, never a scan failure.
A failed page fetch aborts the scan (nothing sensible to continue with).
"""

from __future__ import annotations

import asyncio

from loguru import logger
from pydantic import ValidationError

from src.chain.exceptions import RpcError
from src.chain.instructions import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_IDS
from src.chain.models import ParsedTransaction
from src.chain.rpc_client import SolanaRpcClient
from src.reclaim.ledger import Ledger
from src.reclaim.models import (
    AccountKind,
    LedgerAction,
    LedgerEntry,
    LedgerStatus,
    SponsoredAccount,
)
from src.reclaim.sponsorship import SponsorshipClassifier

TOKEN_INIT_TYPES = frozenset({"initializeAccount", "initializeAccount2", "initializeAccount3"})
ATA_CREATE_TYPES = frozenset({"create", "createIdempotent"})
ATA_PROGRAM = str(ASSOCIATED_TOKEN_PROGRAM_ID)


class Scanner:
    """Discovers accounts the operator paid to create."""

    def __init__(
        self,
        rpc: SolanaRpcClient,
        ledger: Ledger,
        classifier: SponsorshipClassifier,
        *,
        page_size: int = 1000,
        request_delay_ms: int = 100,
        signature_cap: int = 5000,
    ) -> None:
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self._rpc = rpc
        self._ledger = ledger
        self._classifier = classifier
        self._page_size = page_size
        self._delay = request_delay_ms / 1000
        self._cap = max(signature_cap, 0)  # 0 = full history

    async def scan(self, operator_address: str) -> list[SponsoredAccount]:
        """Return sponsored accounts, most recently created first."""
        found: dict[str, SponsoredAccount] = {}
        before: str | None = None
        total_signatures = 0
        fetched = 0
        skipped = 0

        while True:
            limit = self._page_size
            if self._cap:
                limit = min(limit, self._cap - total_signatures)

            page = await self._rpc.get_signatures_for_address(
                operator_address, limit=limit, before=before
            )
            if not page:
                break

            total_signatures += len(page)
            logger.info(
                f"[SCAN] Fetched {len(page)} signatures (total: {total_signatures})"
            )

            for sig in page:
                if sig.err is not None:
                    continue  # failed transactions create nothing

                if fetched:
                    await asyncio.sleep(self._delay)
                fetched += 1

                try:
                    tx = await self._rpc.get_parsed_transaction(sig.signature)
                    if tx is None:
                        continue
                    accounts = self.extract_accounts(tx, operator_address)
                except (RpcError, ValidationError, KeyError, TypeError, ValueError) as e:
                    skipped += 1
                    logger.warning(f"[SCAN] Skipping {sig.signature[:16]}: {e}")
                    continue

                for account in accounts:
                    # Newest-first: keep the most recent creation of an address
                    found.setdefault(account.address, account)

            before = page[-1].signature

            if len(page) < limit:
                break  # history exhausted
            if self._cap and total_signatures >= self._cap:
                logger.info(f"[SCAN] Reached scan cap ({self._cap} signatures)")
                break

        accounts = list(found.values())
        rent_locked = sum(a.rent_lamports for a in accounts)
        confident = [a for a in accounts if a.sponsor_confident]
        confident_rent = sum(a.rent_lamports for a in confident)
        logger.info(
            f"[SCAN] Found {len(accounts)} sponsored accounts "
            f"({len(confident)} confident, {rent_locked} lamports locked, {skipped} skipped)"
        )

        self._ledger.append(
            LedgerEntry(
                action=LedgerAction.SCAN,
                status=LedgerStatus.SUCCESS,
                amount=rent_locked,
                count=len(accounts),
                confident_count=len(confident),
                confident_amount=confident_rent,
                reason=(
                    f"Scanned {total_signatures} signatures, "
                    f"found {len(accounts)} accounts"
                ),
            )
        )
        return accounts

    def extract_accounts(
        self, tx: ParsedTransaction, operator_address: str
    ) -> list[SponsoredAccount]:
        """Candidates created by one transaction (empty unless operator paid)."""
        if tx.err is not None or not self._classifier.is_sponsored(tx, operator_address):
            return []

        verdict = self._classifier.classify(tx, operator_address)
        created_at = (tx.block_time or 0) * 1000
        accounts: list[SponsoredAccount] = []
        seen: set[str] = set()

        for ix in tx.all_instructions:
            info = ix.info
            if ix.program_id in TOKEN_PROGRAM_IDS and ix.type in TOKEN_INIT_TYPES:
                address = info.get("account")
                owner = info.get("owner", "")
                kind = AccountKind.TOKEN_ACCOUNT
            elif ix.program_id == ATA_PROGRAM and ix.type in ATA_CREATE_TYPES:
                address = info.get("account")
                owner = info.get("wallet", "")
                kind = AccountKind.PROGRAM_DERIVED
            else:
                continue

            if not address or address in seen:
                continue
            seen.add(address)

            # createIdempotent on an existing ATA funds nothing
            if tx.pre_balance_of(address) > 0:
                continue

            accounts.append(
                SponsoredAccount(
                    address=address,
                    kind=kind,
                    created_at=created_at,
                    rent_lamports=tx.post_balance_of(address),
                    owner=owner,
                    mint=info.get("mint"),
                    sponsor_confident=verdict.confident,
                    detected_by=verdict.detector,
                    signature=tx.signature,
                )
            )

        return accounts
