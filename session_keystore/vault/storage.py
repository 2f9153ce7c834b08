"""
CredentialStore — namespaced, file-per-record JSON persistence.

Layout::

    <base_dir>/<collection>/<id>.json

A collection may be nested (``sessions/<wallet>``); each path segment is
validated so records can never escape the base directory. Directories are
created owner-only (0700) and files are written owner-only (0600) through a
temporary file that is atomically renamed into place.

There is no locking: concurrent writers to the same id race and the last
rename wins.
"""
import os
import re
import logging
import tempfile
from pathlib import Path
from typing import Any, Optional, Union

import orjson

from ..exceptions import StorageError, ValidationError

logger = logging.getLogger("keystore.vault")

DIR_MODE = 0o700
FILE_MODE = 0o600
RECORD_SUFFIX = ".json"

_SEGMENT_PATTERN = re.compile(r"^[A-Za-z0-9_.\-]{1,128}$")


def _check_segment(segment: str, label: str) -> str:
    if (
        not isinstance(segment, str)
        or not _SEGMENT_PATTERN.match(segment)
        or segment in (".", "..")
    ):
        raise ValidationError(f"Invalid {label}: {segment!r}")
    return segment


class CredentialStore:
    """Durable key-value store, one directory per collection."""

    def __init__(self, base_dir: Union[str, Path]):
        self._base = Path(base_dir).expanduser()

    @property
    def base_path(self) -> Path:
        return self._base

    def __repr__(self) -> str:
        return f"<CredentialStore base={str(self._base)!r}>"

    # ------------------------------------------------------------------
    # Path helpers
    # ------------------------------------------------------------------

    def _collection_dir(self, collection: str) -> Path:
        if not isinstance(collection, str) or not collection:
            raise ValidationError(f"Invalid collection: {collection!r}")
        parts = collection.split("/")
        for part in parts:
            _check_segment(part, "collection")
        return self._base.joinpath(*parts)

    def _record_path(self, collection: str, record_id: str) -> Path:
        _check_segment(record_id, "record id")
        return self._collection_dir(collection) / f"{record_id}{RECORD_SUFFIX}"

    def _ensure_dir(self, path: Path) -> None:
        """Create path and any missing parents with owner-only access."""
        missing = []
        current = path
        while not current.exists():
            missing.append(current)
            current = current.parent
        for directory in reversed(missing):
            try:
                directory.mkdir(mode=DIR_MODE)
            except FileExistsError:
                continue
            # mkdir mode is filtered by the umask
            os.chmod(directory, DIR_MODE)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def put(self, collection: str, record_id: str, record: dict[str, Any]) -> None:
        """Write a record, replacing any previous version.

        Raises:
            ValidationError: If collection or id is not a safe path segment.
            StorageError: If the record cannot be serialized or written.
        """
        path = self._record_path(collection, record_id)
        try:
            payload = orjson.dumps(record, option=orjson.OPT_INDENT_2)
        except TypeError as err:
            raise StorageError(
                f"Failed to serialize {collection}/{record_id}: {err}"
            ) from err

        tmp_name = None
        try:
            self._ensure_dir(path.parent)
            fd, tmp_name = tempfile.mkstemp(
                dir=path.parent, prefix=f".{record_id}.", suffix=".tmp"
            )
            with os.fdopen(fd, "wb") as fp:
                fp.write(payload)
                fp.flush()
                os.fsync(fp.fileno())
            os.chmod(tmp_name, FILE_MODE)
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as err:
            raise StorageError(
                f"Failed to save {collection}/{record_id}: {err}"
            ) from err
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except FileNotFoundError:
                    pass
        logger.debug("Store put: %s/%s", collection, record_id)

    def get(self, collection: str, record_id: str) -> Optional[dict[str, Any]]:
        """Read a record.

        Returns:
            The decoded record, or None if it does not exist.

        Raises:
            StorageError: If the file cannot be read or is not valid JSON.
        """
        path = self._record_path(collection, record_id)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as err:
            raise StorageError(
                f"Failed to load {collection}/{record_id}: {err}"
            ) from err
        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError as err:
            raise StorageError(
                f"Corrupt record {collection}/{record_id}: {err}"
            ) from err
        if not isinstance(data, dict):
            raise StorageError(
                f"Corrupt record {collection}/{record_id}: expected an object"
            )
        return data

    def list(self, collection: str) -> set[str]:
        """Return the ids stored in a collection (empty if it does not exist)."""
        directory = self._collection_dir(collection)
        try:
            entries = list(os.scandir(directory))
        except FileNotFoundError:
            return set()
        except OSError as err:
            raise StorageError(f"Failed to list {collection}: {err}") from err
        return {
            entry.name[:-len(RECORD_SUFFIX)]
            for entry in entries
            if entry.name.endswith(RECORD_SUFFIX)
            and not entry.name.startswith(".")
            and entry.is_file()
        }

    def collections(self, parent: str) -> set[str]:
        """Return the names of sub-collections directly under ``parent``."""
        directory = self._collection_dir(parent)
        try:
            entries = list(os.scandir(directory))
        except FileNotFoundError:
            return set()
        except OSError as err:
            raise StorageError(f"Failed to list {parent}: {err}") from err
        return {
            entry.name for entry in entries
            if entry.is_dir() and _SEGMENT_PATTERN.match(entry.name)
        }

    def remove(self, collection: str, record_id: str) -> bool:
        """Delete a record.

        Returns:
            True if a record was deleted, False if there was none.
        """
        path = self._record_path(collection, record_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as err:
            raise StorageError(
                f"Failed to delete {collection}/{record_id}: {err}"
            ) from err
        logger.debug("Store remove: %s/%s", collection, record_id)
        return True
