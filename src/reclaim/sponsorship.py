"""Sponsorship confidence — ordered detector chain.

Inclusion in a scan only requires the operator to be the fee payer. The
confidence flag tries to tell relayed sponsorship apart from the operator's
own activity. Detectors run in priority order; the first one that returns a
verdict wins, and the verdict records which detector produced it.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Protocol

from src.chain.instructions import MEMO_PROGRAM_IDS
from src.chain.models import ParsedTransaction


@dataclass(frozen=True)
class SponsorshipVerdict:
    confident: bool
    detector: str
    evidence: str = ""


class SponsorshipDetector(Protocol):
    name: str

    def detect(self, tx: ParsedTransaction, operator: str) -> SponsorshipVerdict | None: ...


class ProgramIdDetector:
    """A known sponsoring program is invoked in the transaction."""

    name = "program_id"

    def __init__(self, program_ids: Iterable[str]) -> None:
        self._program_ids = frozenset(program_ids)

    def detect(self, tx: ParsedTransaction, operator: str) -> SponsorshipVerdict | None:
        if not self._program_ids:
            return None
        for ix in tx.all_instructions:
            if ix.program_id in self._program_ids:
                return SponsorshipVerdict(True, self.name, ix.program_id)
        return None


class MemoMarkerDetector:
    """A memo instruction carries a known marker (e.g. ``KORA:v1``)."""

    name = "memo"

    def __init__(self, markers: Iterable[str]) -> None:
        self._markers = tuple(m for m in markers if m)

    def detect(self, tx: ParsedTransaction, operator: str) -> SponsorshipVerdict | None:
        if not self._markers:
            return None
        for ix in tx.instructions:
            if ix.program_id not in MEMO_PROGRAM_IDS:
                continue
            memo = _memo_text(ix.parsed)
            for marker in self._markers:
                if marker in memo:
                    return SponsorshipVerdict(True, self.name, marker)
        return None


class RelayFeePayerDetector:
    """Fee payer is one of the known relay nodes."""

    name = "relay"

    def __init__(self, relay_addresses: Iterable[str]) -> None:
        self._relays = frozenset(relay_addresses)

    def detect(self, tx: ParsedTransaction, operator: str) -> SponsorshipVerdict | None:
        if tx.fee_payer and tx.fee_payer in self._relays:
            return SponsorshipVerdict(True, self.name, tx.fee_payer)
        return None


class OperatorFeePayerFallback:
    """Terminal policy: operator-paid means sponsored, if ``confident`` is set.

    With ``confident=False`` nothing is marked confident unless one of the
    specific detectors matched.
    """

    name = "fallback"

    def __init__(self, *, confident: bool = True) -> None:
        self._confident = confident

    def detect(self, tx: ParsedTransaction, operator: str) -> SponsorshipVerdict:
        operator_paid = tx.fee_payer == operator
        return SponsorshipVerdict(self._confident and operator_paid, self.name)


class SponsorshipClassifier:
    """Runs detectors in order and reports the first verdict."""

    def __init__(self, detectors: Sequence[SponsorshipDetector]) -> None:
        self._detectors = list(detectors)

    @classmethod
    def build(
        cls,
        *,
        program_ids: Iterable[str] = (),
        memo_markers: Iterable[str] = (),
        relay_addresses: Iterable[str] = (),
        fallback_confident: bool = True,
    ) -> SponsorshipClassifier:
        return cls(
            [
                ProgramIdDetector(program_ids),
                MemoMarkerDetector(memo_markers),
                RelayFeePayerDetector(relay_addresses),
                OperatorFeePayerFallback(confident=fallback_confident),
            ]
        )

    @staticmethod
    def is_sponsored(tx: ParsedTransaction, operator: str) -> bool:
        """Inclusion criterion: operator paid the fees (and the rent)."""
        return bool(operator) and tx.fee_payer == operator

    def classify(self, tx: ParsedTransaction, operator: str) -> SponsorshipVerdict:
        for detector in self._detectors:
            verdict = detector.detect(tx, operator)
            if verdict is not None:
                return verdict
        return SponsorshipVerdict(False, "none")


def _memo_text(parsed: dict | str | None) -> str:
    # spl-memo parses to a plain string; older nodes wrap it in info.data
    if isinstance(parsed, str):
        return parsed
    if isinstance(parsed, dict):
        data = (parsed.get("info") or {}).get("data")
        if isinstance(data, str):
            return data
    return ""
