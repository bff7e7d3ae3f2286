"""
Polling change feed over the record directory.

Each poll compares (mtime_ns, size) per record file with the previous scan.
Temp and hidden files are never reported.
"""
from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Dict, List, Tuple

from application.ports.change_feed import ChangeKind, StoreChange
from infrastructure.repositories.file_payment_repository import reference_from_filename


Signature = Tuple[int, int]


class DirectoryChangeFeed:
    def __init__(self, data_dir: str) -> None:
        self.base_path = Path(data_dir).resolve()
        self.location = str(self.base_path)
        self._state: Dict[str, Signature] = {}

    def _scan(self) -> Dict[str, Signature]:
        state: Dict[str, Signature] = {}
        if not self.base_path.is_dir():
            return state
        with os.scandir(self.base_path) as entries:
            for entry in entries:
                ref = reference_from_filename(entry.name)
                if ref is None:
                    continue
                try:
                    st = entry.stat()
                except FileNotFoundError:
                    continue
                state[ref] = (st.st_mtime_ns, st.st_size)
        return state

    async def prime(self) -> None:
        self.base_path.mkdir(parents=True, exist_ok=True)
        self._state = await asyncio.to_thread(self._scan)

    async def poll(self) -> List[StoreChange]:
        current = await asyncio.to_thread(self._scan)
        changes: List[StoreChange] = []
        for ref, signature in current.items():
            previous = self._state.get(ref)
            if previous is None:
                changes.append(StoreChange(ref, ChangeKind.ADDED))
            elif previous != signature:
                changes.append(StoreChange(ref, ChangeKind.MODIFIED))
        for ref in self._state.keys() - current.keys():
            changes.append(StoreChange(ref, ChangeKind.REMOVED))
        self._state = current
        return changes
