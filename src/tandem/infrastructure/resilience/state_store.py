"""
Persistence for circuit breaker state.

A store holds one ``CircuitStateRecord`` per breaker name with last-writer-wins
semantics. Writes are all-or-nothing: a failed ``put`` leaves the previous
record intact.
"""

import json
import os
import re
import tempfile
import threading
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Union, runtime_checkable

from tandem.exceptions import StateStoreError
from tandem.logging import get_logger

from .models import CircuitStateRecord

logger = get_logger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


@runtime_checkable
class StateStore(Protocol):
    """Key-value store for breaker state records."""

    def get(self, name: str) -> Optional[CircuitStateRecord]:
        """Return the record for ``name`` or None when absent."""
        ...

    def put(self, record: CircuitStateRecord) -> None:
        """Unconditionally replace the record for ``record.name``."""
        ...


class InMemoryStateStore:
    """Process-local store, mainly for tests and single-process deployments."""

    def __init__(self):
        self._records: Dict[str, dict] = {}
        self._lock = threading.Lock()

    def get(self, name: str) -> Optional[CircuitStateRecord]:
        with self._lock:
            data = self._records.get(name)
        # Serialized copies so callers never share a record object
        return CircuitStateRecord.from_dict(data) if data is not None else None

    def put(self, record: CircuitStateRecord) -> None:
        with self._lock:
            self._records[record.name] = record.to_dict()

    def list_records(self) -> List[CircuitStateRecord]:
        with self._lock:
            return [CircuitStateRecord.from_dict(d) for d in self._records.values()]

    def clear(self) -> None:
        with self._lock:
            self._records.clear()


class FileStateStore:
    """
    One JSON document per breaker in a directory.

    Every process pointed at the same directory shares breaker state. Writes
    go to a temporary file that is atomically renamed over the target, so a
    crash mid-write never leaves a partial record behind.
    """

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def _path_for(self, name: str) -> Path:
        return self.directory / f"{_UNSAFE_FILENAME_CHARS.sub('_', name)}.json"

    def get(self, name: str) -> Optional[CircuitStateRecord]:
        path = self._path_for(name)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            raise StateStoreError("read", name, str(e)) from e

        try:
            return CircuitStateRecord.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise StateStoreError("read", name, f"malformed record: {e}") from e

    def put(self, record: CircuitStateRecord) -> None:
        path = self._path_for(record.name)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self.directory, prefix=f".{path.stem}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(record.to_dict(), f, indent=2)
                os.replace(tmp_path, path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise StateStoreError("write", record.name, str(e)) from e

        logger.debug(
            "Persisted breaker state",
            breaker=record.name,
            state=record.state.value,
            path=str(path),
        )

    def list_records(self) -> List[CircuitStateRecord]:
        """All readable records in the directory, sorted by name."""
        if not self.directory.exists():
            return []

        records = []
        for path in sorted(self.directory.glob("*.json")):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    records.append(CircuitStateRecord.from_dict(json.load(f)))
            except (OSError, KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping unreadable breaker record", path=str(path), error=str(e))
        return sorted(records, key=lambda r: r.name)
