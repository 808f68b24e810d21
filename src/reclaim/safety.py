"""Safety gate — persisted whitelist and emergency stop.

Both documents are small JSON files. Reads never raise: a missing or
corrupt file falls back to "empty whitelist" / "not stopped" so first run
is well-defined. Writes replace the whole document atomically
(temp file + os.replace) under a process-wide lock, so a reader never sees
a half-written file and two in-process writers can't lose each other's update.
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import Callable
from pathlib import Path
from threading import RLock
from typing import Generic, TypeVar

from loguru import logger
from pydantic import BaseModel, ValidationError

from src.chain.instructions import is_valid_pubkey
from src.reclaim.models import EmergencyStopState, WhitelistDocument, now_ms

DocT = TypeVar("DocT", bound=BaseModel)


class JsonDocumentStore(Generic[DocT]):
    """Single JSON document on disk, validated by a pydantic model."""

    def __init__(self, path: str | Path, model: type[DocT], default: Callable[[], DocT]) -> None:
        self._path = Path(path)
        self._model = model
        self._default = default

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> DocT:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return self._default()
        except OSError as e:
            logger.warning(f"[SAFETY] Cannot read {self._path}: {e} — using defaults")
            return self._default()

        try:
            return self._model.model_validate_json(raw)
        except ValidationError as e:
            logger.error(f"[SAFETY] Corrupt document {self._path}: {e.error_count()} errors — using defaults")
            return self._default()

    def save(self, doc: DocT) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = doc.model_dump_json(by_alias=True, indent=2)
        fd, tmp_name = tempfile.mkstemp(
            dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


def _require_pubkey(address: str) -> str:
    address = address.strip()
    if not is_valid_pubkey(address):
        raise ValueError(f"Invalid public key: {address!r}")
    return address


class SafetyGate:
    """Whitelist + emergency stop, consulted before every state-changing action."""

    def __init__(self, whitelist_path: str | Path, emergency_stop_path: str | Path) -> None:
        self._whitelist = JsonDocumentStore(whitelist_path, WhitelistDocument, WhitelistDocument)
        self._stop = JsonDocumentStore(emergency_stop_path, EmergencyStopState, EmergencyStopState)
        self._lock = RLock()

    # ─── Emergency stop ──────────────────────────────────────────────

    def is_stopped(self) -> EmergencyStopState:
        """Fresh read from disk on every call (may be toggled mid-batch)."""
        return self._stop.load()

    def set_stopped(self, reason: str) -> EmergencyStopState:
        state = EmergencyStopState(
            stopped=True,
            stopped_at=now_ms(),
            reason=reason or "Manual emergency stop",
        )
        with self._lock:
            self._stop.save(state)
        logger.warning(f"[SAFETY] Emergency stop ENABLED: {state.reason}")
        return state

    def clear_stopped(self) -> EmergencyStopState:
        state = EmergencyStopState()
        with self._lock:
            self._stop.save(state)
        logger.info("[SAFETY] Emergency stop cleared")
        return state

    # ─── Whitelist ───────────────────────────────────────────────────

    def load_whitelist(self) -> WhitelistDocument:
        return self._whitelist.load()

    def is_whitelisted(self, address: str, owner: str | None = None) -> bool:
        whitelist = self._whitelist.load()
        if address in whitelist.accounts:
            return True
        return bool(owner) and owner in whitelist.owners

    def add_to_whitelist(self, address: str) -> bool:
        """Protect an account. Returns False if it was already listed."""
        return self._mutate("accounts", _require_pubkey(address), add=True)

    def remove_from_whitelist(self, address: str) -> bool:
        """Unprotect an account. Returns False if it wasn't listed."""
        return self._mutate("accounts", address.strip(), add=False)

    def add_owner_to_whitelist(self, owner: str) -> bool:
        return self._mutate("owners", _require_pubkey(owner), add=True)

    def remove_owner_from_whitelist(self, owner: str) -> bool:
        return self._mutate("owners", owner.strip(), add=False)

    def replace_whitelist(self, doc: WhitelistDocument) -> WhitelistDocument:
        """Overwrite the whole document (all entries must be valid pubkeys)."""
        clean = WhitelistDocument(
            accounts=[_require_pubkey(a) for a in doc.accounts],
            owners=[_require_pubkey(o) for o in doc.owners],
            description=doc.description,
        )
        with self._lock:
            self._whitelist.save(clean)
        logger.info(
            f"[SAFETY] Whitelist replaced: {len(clean.accounts)} accounts, {len(clean.owners)} owners"
        )
        return clean

    def _mutate(self, field_name: str, value: str, *, add: bool) -> bool:
        with self._lock:
            doc = self._whitelist.load()
            entries: set[str] = set(getattr(doc, field_name))
            if (value in entries) == add:
                return False
            if add:
                entries.add(value)
            else:
                entries.discard(value)
            updated = doc.model_copy(update={field_name: sorted(entries)})
            self._whitelist.save(updated)

        logger.info(f"[SAFETY] Whitelist {field_name}: {'added' if add else 'removed'} {value}")
        return True
