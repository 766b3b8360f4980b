"""Key/value backends for persisting projects."""

import json
import os
import pathlib
import re
import tempfile
from typing import Any, Dict, Optional, Protocol, Union

from imusync.core import config, exceptions

logger = config.get_logger()


class KeyValueStorage(Protocol):
    """String keys mapped to JSON-serializable dictionaries."""

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """The stored value, or None if the key is unknown or unreadable."""
        ...

    def set(self, key: str, value: Dict[str, Any]) -> None:
        """Store value under key, overwriting any previous value.

        Raises:
            StorageError: If the value could not be written.
        """
        ...

    def delete(self, key: str) -> None:
        """Remove key if present."""
        ...


class MemoryStorage:
    """Storage kept in a dictionary, lost when the process exits."""

    def __init__(self) -> None:
        """Initialize empty storage."""
        self._items: Dict[str, str] = {}

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """The stored value, or None."""
        text = self._items.get(key)
        if text is None:
            return None
        return json.loads(text)

    def set(self, key: str, value: Dict[str, Any]) -> None:
        """Store a copy of value under key."""
        try:
            self._items[key] = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise exceptions.StorageError(f"Could not serialize {key}: {e}") from e

    def delete(self, key: str) -> None:
        """Remove key if present."""
        self._items.pop(key, None)

    def __contains__(self, key: str) -> bool:
        """Whether key is stored."""
        return key in self._items


class JsonDirectoryStorage:
    """One JSON file per key inside a directory.

    Files are written to a temporary file first and then moved into place, so a
    failed write leaves the previous value intact.
    """

    def __init__(self, directory: Union[pathlib.Path, str]) -> None:
        """Initialize the storage.

        Args:
            directory: Where the JSON files live. Created on first write.
        """
        self.directory = pathlib.Path(directory)

    def path_for(self, key: str) -> pathlib.Path:
        """The file holding key; characters unsafe in file names are replaced."""
        safe_key = re.sub(r"[^A-Za-z0-9._-]", "_", key)
        return self.directory / f"{safe_key}.json"

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """The stored value, or None if missing or not valid JSON."""
        path = self.path_for(key)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Could not read stored project %s: %s", path, e)
            return None

    def set(self, key: str, value: Dict[str, Any]) -> None:
        """Atomically write value to the file for key.

        Raises:
            StorageError: If the directory or the file cannot be written.
        """
        path = self.path_for(key)
        tmp_path = None
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".tmp_", dir=self.directory)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(value, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise exceptions.StorageError(f"Could not write {path}: {e}") from e

    def delete(self, key: str) -> None:
        """Remove the file for key if present."""
        self.path_for(key).unlink(missing_ok=True)
