"""
Payment Mode Catalog

Device-local preferences. The catalog is NOT synced: only a payment
mode's name travels with an expense, and it is resolved back against
this catalog when remote documents are merged.

Stored as a JSON file holding one object keyed by "SavedPaymentModes".
The first load seeds the built-in modes.
"""

import json
import threading
from pathlib import Path
from typing import Optional, Union
from uuid import UUID

import structlog
from pydantic import TypeAdapter, ValidationError

from expense_sync.models.expense import CASH, DEFAULT_PAYMENT_MODES, PaymentMode


logger = structlog.get_logger(__name__)

PAYMENT_MODES_KEY = "SavedPaymentModes"

_modes_adapter = TypeAdapter(list[PaymentMode])


class PaymentModeStore:
    """Payment mode catalog backed by a JSON preferences file."""

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self._path = Path(path) if path else None
        self._lock = threading.Lock()
        self._modes: list[PaymentMode] = self._load()

    @property
    def payment_modes(self) -> list[PaymentMode]:
        with self._lock:
            return list(self._modes)

    @property
    def default_payment_mode(self) -> PaymentMode:
        """The mode flagged as default, or Cash."""
        with self._lock:
            return next((m for m in self._modes if m.is_default), CASH)

    def get_by_name(self, name: str) -> Optional[PaymentMode]:
        wanted = name.strip().lower()
        with self._lock:
            return next((m for m in self._modes if m.name.lower() == wanted), None)

    def add(self, mode: PaymentMode) -> None:
        with self._lock:
            self._modes.append(mode)
            self._save()

    def update(self, mode: PaymentMode) -> bool:
        """Replace the mode with the same id. Returns False if unknown."""
        with self._lock:
            for index, existing in enumerate(self._modes):
                if existing.id == mode.id:
                    self._modes[index] = mode
                    self._save()
                    return True
        return False

    def delete(self, mode_id: UUID) -> None:
        with self._lock:
            self._modes = [m for m in self._modes if m.id != mode_id]
            self._save()

    def set_default(self, mode_id: UUID) -> bool:
        """Make one mode the default and clear the flag on all others."""
        with self._lock:
            if not any(m.id == mode_id for m in self._modes):
                return False
            self._modes = [
                m.model_copy(update={"is_default": m.id == mode_id}) for m in self._modes
            ]
            self._save()
            return True

    # ------------------------------------------------------------------
    # Persistence
    def _load(self) -> list[PaymentMode]:
        if self._path and self._path.exists():
            try:
                data = json.loads(self._path.read_text(encoding="utf-8"))
                return _modes_adapter.validate_python(data[PAYMENT_MODES_KEY])
            except (OSError, ValueError, KeyError, TypeError, ValidationError) as e:
                logger.warning("payment_modes_unreadable", path=str(self._path), error=str(e))

        # First run (or unreadable file): seed the built-in modes
        modes = [m.model_copy() for m in DEFAULT_PAYMENT_MODES]
        self._modes = modes
        self._save()
        return modes

    def _save(self) -> None:
        if not self._path:
            return
        data = {}
        if self._path.exists():
            try:
                data = json.loads(self._path.read_text(encoding="utf-8"))
            except (OSError, ValueError):
                data = {}
        if not isinstance(data, dict):
            data = {}
        data[PAYMENT_MODES_KEY] = _modes_adapter.dump_python(self._modes, mode="json")
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(data, indent=2), encoding="utf-8")
