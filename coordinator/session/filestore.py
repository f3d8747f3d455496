"""
JSON File Store
===============

Key/value persistence of JSON documents under a root directory.

Every write goes to a temporary file in the target's directory, is flushed
and fsynced, then renamed over the target, so readers never observe a
partially written file.

Key Features:
- save / load / delete / exists / list_keys
- save_if_not_exists: create-only write that never exposes partial content
- save_with_version / load_with_version: optimistic concurrency using a
  monotonic counter stored with the record
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, List, Tuple

from filelock import FileLock

from coordinator.errors import (
    AlreadyExistsError,
    NotFoundError,
    SessionCorruptedError,
    StaleDataError,
)

logger = logging.getLogger(__name__)

FILE_SUFFIX = ".json"
GUARD_SUFFIX = ".guard"


def _fsync_dir(directory: Path) -> None:
    try:
        fd = os.open(directory, os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        pass
    finally:
        os.close(fd)


def _write_temp(directory: Path, data: Any) -> Path:
    """Serialize data into a synced temp file in directory and return its path."""
    tmp = tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        dir=directory,
        prefix=".tmp-",
        suffix=FILE_SUFFIX,
        delete=False,
    )
    try:
        with tmp:
            json.dump(data, tmp, indent=2)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.chmod(tmp.name, 0o644)
    except BaseException:
        os.unlink(tmp.name)
        raise
    return Path(tmp.name)


def atomic_write_json(path: Path, data: Any) -> None:
    """
    Atomically replace path with the JSON encoding of data.

    Args:
        path: Target file; its parent directory is created if needed
        data: JSON-serializable value
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = _write_temp(path.parent, data)
    try:
        os.replace(tmp_path, path)
    except OSError:
        os.unlink(tmp_path)
        raise
    _fsync_dir(path.parent)


class FileStore:
    """
    JSON documents keyed by relative name under a root directory.

    Keys may contain "/" to address nested directories ("abc/session" maps
    to root/abc/session.json) but may not escape the root.
    """

    def __init__(self, root: Path):
        """
        Initialize the store.

        Args:
            root: Directory holding the documents (created lazily)
        """
        self.root = Path(root)

    def path_for(self, key: str) -> Path:
        if not key or key.startswith("/") or "\\" in key:
            raise ValueError(f"invalid key: {key!r}")
        parts = key.split("/")
        if any(part in ("", ".", "..") for part in parts):
            raise ValueError(f"invalid key: {key!r}")
        return self.root.joinpath(*parts[:-1], parts[-1] + FILE_SUFFIX)

    def save(self, key: str, data: Any) -> None:
        atomic_write_json(self.path_for(key), data)

    def load(self, key: str) -> Any:
        """
        Load a document.

        Raises:
            NotFoundError: If the key does not exist
            SessionCorruptedError: If the file is not valid JSON
        """
        path = self.path_for(key)
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = f.read()
        except FileNotFoundError:
            raise NotFoundError(f"{key} not found")
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise SessionCorruptedError(f"{key} is corrupted: {e}")

    def exists(self, key: str) -> bool:
        return self.path_for(key).is_file()

    def delete(self, key: str) -> None:
        path = self.path_for(key)
        try:
            os.remove(path)
        except FileNotFoundError:
            raise NotFoundError(f"{key} not found")
        guard = path.with_name(path.name + GUARD_SUFFIX)
        if guard.exists():
            guard.unlink()

    def list_keys(self, prefix: str = "") -> List[str]:
        """Return all keys (optionally under a "dir/" prefix), sorted."""
        if not self.root.is_dir():
            return []
        keys = []
        for path in self.root.rglob("*" + FILE_SUFFIX):
            if path.name.startswith(".tmp-") or not path.is_file():
                continue
            rel = path.relative_to(self.root).as_posix()
            key = rel[: -len(FILE_SUFFIX)]
            if key.startswith(prefix):
                keys.append(key)
        return sorted(keys)

    def save_if_not_exists(self, key: str, data: Any) -> None:
        """
        Create a document only if the key is absent.

        The content is fully written before it becomes visible: a synced temp
        file is hard-linked into place, which fails atomically if the target
        already exists.

        Raises:
            AlreadyExistsError: If the key already exists
        """
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = _write_temp(path.parent, data)
        try:
            os.link(tmp_path, path)
        except FileExistsError:
            raise AlreadyExistsError(f"{key} already exists")
        finally:
            os.unlink(tmp_path)
        _fsync_dir(path.parent)

    def _guard(self, path: Path) -> FileLock:
        """Cross-process mutex serializing versioned writes to one key."""
        path.parent.mkdir(parents=True, exist_ok=True)
        return FileLock(str(path.with_name(path.name + GUARD_SUFFIX)))

    def _read_versioned(self, key: str) -> Tuple[Any, int]:
        record = self.load(key)
        if (
            not isinstance(record, dict)
            or not isinstance(record.get("version"), int)
            or "data" not in record
        ):
            raise SessionCorruptedError(f"{key} is not a versioned record")
        return record["data"], record["version"]

    def load_with_version(self, key: str) -> Tuple[Any, int]:
        """
        Load a versioned document.

        Returns:
            (data, version) where version is the token to pass back to
            save_with_version
        """
        return self._read_versioned(key)

    def save_with_version(self, key: str, data: Any, expected_version: int) -> int:
        """
        Save a versioned document if nobody else has written it since.

        Args:
            key: Document key
            data: New content
            expected_version: Version returned by the last load, or 0 to
                create the document

        Returns:
            The new version

        Raises:
            AlreadyExistsError: expected_version is 0 but the key exists
            NotFoundError: expected_version is non-zero but the key is missing
            StaleDataError: The stored version differs from expected_version
        """
        path = self.path_for(key)
        with self._guard(path):
            if not path.exists():
                if expected_version != 0:
                    raise NotFoundError(f"{key} not found")
                current = 0
            else:
                if expected_version == 0:
                    raise AlreadyExistsError(f"{key} already exists")
                _, current = self._read_versioned(key)
                if current != expected_version:
                    raise StaleDataError(
                        f"{key} is at version {current}, expected {expected_version}"
                    )
            new_version = current + 1
            atomic_write_json(path, {"version": new_version, "data": data})
        logger.debug(f"Saved {key} at version {new_version}")
        return new_version
