"""
JSON File Storage Implementation

DESIGN DECISION: Each key lives in its own file inside one directory.
Writes go to a temporary file that is then renamed over the target, so a
crash mid-write leaves either the old value or the new one, never half of
each.

TRADEOFFS:
- Not transactional across keys (the queue only ever uses one key at a time)
- Whole-value rewrites (fine for a queue of a few hundred entries)

Transient OS errors (a busy file on some platforms, a full disk clearing up)
are retried a few times before surfacing as StorageError.
"""

import asyncio
import os
import re
import tempfile
from pathlib import Path
from typing import Optional, Union

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.services.storage.interface import KeyValueStore, StorageUnavailableError


_SAFE_KEY = re.compile(r"[^A-Za-z0-9_.-]+")

_transient_retry = retry(
    retry=retry_if_exception_type(OSError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
    reraise=True,
)


class JsonFileKeyValueStore(KeyValueStore):
    """
    File-per-key store rooted at a directory.

    The directory is created on first write.
    """

    def __init__(self, directory: Union[str, Path]):
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, key: str) -> Path:
        """File that holds a key. Unsafe characters are replaced."""
        safe = _SAFE_KEY.sub("_", key).strip("._") or "_"
        return self._directory / f"{safe}.json"

    @_transient_retry
    def _read(self, path: Path) -> Optional[str]:
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    @_transient_retry
    def _write(self, path: Path, value: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(value)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    @_transient_retry
    def _remove(self, path: Path) -> None:
        path.unlink(missing_ok=True)

    async def get_item(self, key: str) -> Optional[str]:
        path = self.path_for(key)
        try:
            return await asyncio.to_thread(self._read, path)
        except OSError as e:
            raise StorageUnavailableError(f"Failed to read {path}: {e}") from e

    async def set_item(self, key: str, value: str) -> None:
        path = self.path_for(key)
        try:
            await asyncio.to_thread(self._write, path, value)
        except OSError as e:
            raise StorageUnavailableError(f"Failed to write {path}: {e}") from e

    async def remove_item(self, key: str) -> None:
        path = self.path_for(key)
        try:
            await asyncio.to_thread(self._remove, path)
        except OSError as e:
            raise StorageUnavailableError(f"Failed to remove {path}: {e}") from e
