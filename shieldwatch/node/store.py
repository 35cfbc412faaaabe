"""
Shieldwatch Processed-ID Store

Persisted set of delivered transaction ids, stored as a JSON array.

Every write replaces the file atomically. Read or write failures are logged
and the in-memory set stays authoritative for the rest of the session.
"""

from __future__ import annotations
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Iterator, Set, Union

from shieldwatch.errors import PersistenceError

logger = logging.getLogger(__name__)


class ProcessedIdStore:
    """Set of delivered ids backed by a JSON file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._ids: Set[str] = set()
        self.persistent = True

    def __contains__(self, tx_id: str) -> bool:
        return tx_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._ids))

    def load(self) -> int:
        """
        Load ids from disk. A missing file is an empty set.

        Returns:
            Number of ids loaded
        """
        if not self.path.exists():
            logger.debug(f"No processed-id file at {self.path}")
            return 0

        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
            if not isinstance(data, list):
                raise ValueError("expected a JSON array")
        except (OSError, ValueError) as e:
            error = PersistenceError(str(self.path), str(e))
            logger.error(f"{error.message}; continuing in memory")
            self.persistent = False
            return 0

        loaded = {str(item) for item in data}
        self._ids.update(loaded)
        logger.info(f"Loaded {len(loaded)} processed ids from {self.path}")
        return len(loaded)

    def save(self) -> bool:
        """
        Write all ids atomically.

        Returns:
            True if the file was written
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self.path.parent,
                prefix=self.path.name,
                suffix=".tmp",
            )
            try:
                with os.fdopen(fd, 'w') as f:
                    json.dump(sorted(self._ids), f, indent=2)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            error = PersistenceError(str(self.path), str(e))
            logger.error(f"{error.message}; continuing in memory")
            self.persistent = False
            return False

        self.persistent = True
        return True

    def mark(self, tx_id: str) -> bool:
        """
        Record a delivered id and persist.

        Marking an id twice is a no-op.

        Returns:
            True if the id was new
        """
        if tx_id in self._ids:
            return False
        self._ids.add(tx_id)
        self.save()
        return True
