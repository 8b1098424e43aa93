"""
File Cart Backend with Concurrency Control

Stores one JSON document per table in the data directory:

    data/carts/pending_order_5.json
    data/carts/pending_order_5.json.lock

Every read and write holds the table's FileLock, and writes go through a
temporary file plus os.replace so a crash never leaves a half-written cart.
"""

import logging
import os
import re
from pathlib import Path
from typing import Optional

from filelock import FileLock, Timeout

from backoffice.core.exceptions import StorageError
from backoffice.services.cart.base import BaseCartBackend

logger = logging.getLogger(__name__)

FILE_PATTERN = re.compile(r"^pending_order_(\d+)\.json$")


class FileCartBackend(BaseCartBackend):
    """File-backed cart storage for development and single-host setups."""

    def __init__(self, directory: str, lock_timeout: int = 10):
        self.directory = Path(directory)
        self.lock_timeout = lock_timeout
        self._ensure_data_dir()

        logger.info(
            f"FileCartBackend initialized "
            f"(directory={self.directory}, lock_timeout={lock_timeout}s)"
        )

    @property
    def backend_name(self) -> str:
        return "file"

    def _ensure_data_dir(self) -> None:
        """Create data directory if needed."""
        if not self.directory.exists():
            self.directory.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created data directory: {self.directory}")

    def _path(self, table_id: int) -> Path:
        return self.directory / f"pending_order_{table_id}.json"

    def _lock(self, table_id: int) -> FileLock:
        return FileLock(str(self._path(table_id)) + ".lock", timeout=self.lock_timeout)

    def get(self, table_id: int) -> Optional[str]:
        path = self._path(table_id)
        try:
            with self._lock(table_id):
                if not path.exists():
                    return None
                return path.read_text(encoding="utf-8")
        except Timeout:
            logger.error(f"Lock timeout reading cart of table {table_id}")
            raise StorageError(f"Cart of table {table_id} is locked")
        except OSError as e:
            raise StorageError(f"Cannot read cart of table {table_id}: {e}")

    def set(self, table_id: int, document: str) -> None:
        self._ensure_data_dir()
        path = self._path(table_id)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            with self._lock(table_id):
                tmp_path.write_text(document, encoding="utf-8")
                os.replace(tmp_path, path)
            logger.debug(f"Cart of table {table_id} written to {path}")
        except Timeout:
            logger.error(f"Lock timeout writing cart of table {table_id}")
            raise StorageError(f"Cart of table {table_id} is locked")
        except OSError as e:
            raise StorageError(f"Cannot write cart of table {table_id}: {e}")

    def delete(self, table_id: int) -> bool:
        path = self._path(table_id)
        try:
            with self._lock(table_id):
                if not path.exists():
                    return False
                path.unlink()
                return True
        except Timeout:
            logger.error(f"Lock timeout deleting cart of table {table_id}")
            raise StorageError(f"Cart of table {table_id} is locked")
        except OSError as e:
            raise StorageError(f"Cannot delete cart of table {table_id}: {e}")

    def table_ids(self) -> list[int]:
        if not self.directory.exists():
            return []
        ids = []
        for entry in self.directory.iterdir():
            match = FILE_PATTERN.match(entry.name)
            if match:
                ids.append(int(match.group(1)))
        return sorted(ids)

    def health_check(self) -> bool:
        try:
            self._ensure_data_dir()
            return os.access(self.directory, os.W_OK)
        except OSError as e:
            logger.error(f"Cart directory health check failed: {e}")
            return False
