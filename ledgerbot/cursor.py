from __future__ import annotations

import logging
import os
from pathlib import Path

from pydantic import BaseModel

from .types import Table

logger = logging.getLogger(__name__)


class CursorState(BaseModel):
    credit_entries: int = 0
    direct_sales: int = 0
    payments: int = 0


class CursorStore:
    """Last processed row id per table, persisted to a small JSON file.

    Cursors only move forward. Every advance rewrites the whole file; a failed
    write is logged and the in-memory value is kept, so at worst some rows are
    reprocessed after a restart.
    """

    def __init__(self, path: Path | str, state: CursorState | None = None) -> None:
        self.path = Path(path)
        self.state = state or CursorState()

    @classmethod
    def load(cls, path: Path | str) -> CursorStore:
        path = Path(path)
        state = CursorState()
        try:
            if path.exists():
                state = CursorState.model_validate_json(path.read_text(encoding="utf-8"))
        except Exception:
            logger.exception("Could not read cursor state from %s, starting from zero", path)
            state = CursorState()
        return cls(path, state)

    def get(self, table: Table) -> int:
        return int(getattr(self.state, table.value))

    def snapshot(self) -> dict[str, int]:
        return self.state.model_dump()

    def advance(self, table: Table, row_id: int | None) -> bool:
        """Moves the cursor to row_id if it is ahead; returns whether it moved."""

        try:
            new = int(row_id or 0)
        except (TypeError, ValueError):
            return False
        if new <= self.get(table):
            return False
        setattr(self.state, table.value, new)
        self.save()
        return True

    def save(self) -> None:
        # Replaced atomically: the file on disk is always a complete state.
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            tmp.write_text(self.state.model_dump_json(indent=2), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError:
            logger.exception("Could not persist cursor state to %s", self.path)
