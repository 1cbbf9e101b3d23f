"""
Persistence backends for the settings document.

The engine only needs two operations from storage:

- ``get() -> (document | None, stored_version | None)``
- ``set(document)``, a single atomic write

Both are coroutines; they are the only suspension points of a migration pass.
``InMemoryConfigStore`` backs tests and embedding applications that own their
own persistence, ``FileConfigStore`` keeps the document in a JSON or YAML file
under a fixed storage key.
"""

import asyncio
import json
import os
import tempfile
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Tuple, Union, runtime_checkable

import yaml
from loguru import logger

from confchain.exceptions import StoreError
from confchain.migration.versions import read_document_version

DEFAULT_STORAGE_KEY = "config"

StoredDocument = Tuple[Optional[Dict[str, Any]], Optional[Any]]


@runtime_checkable
class ConfigStore(Protocol):
    """Interface the engine consumes from the persistence backend."""

    async def get(self) -> StoredDocument:
        """Return the stored document and its version tag (None, None when empty)."""
        ...

    async def set(self, document: Dict[str, Any]) -> None:
        """Persist ``document`` atomically; raise StoreError on failure."""
        ...


class InMemoryConfigStore:
    """
    Dictionary-backed store that remembers every read and write.

    Args:
        document: Initially stored document (None for a first install)
        version: Version tag returned alongside it; read from the document's
            ``version`` field when omitted
    """

    _UNSET = object()

    def __init__(self, document: Optional[Dict[str, Any]] = None, version: Any = _UNSET) -> None:
        self._document = deepcopy(document)
        self._version = read_document_version(document) if version is self._UNSET else version
        self.reads = 0
        self.writes: List[Dict[str, Any]] = []
        self.fail_on_set: Optional[Exception] = None

    @property
    def document(self) -> Optional[Dict[str, Any]]:
        """Copy of what is currently stored."""
        return deepcopy(self._document)

    async def get(self) -> StoredDocument:
        self.reads += 1
        return deepcopy(self._document), self._version

    async def set(self, document: Dict[str, Any]) -> None:
        if self.fail_on_set is not None:
            raise StoreError(
                f"In-memory write rejected: {self.fail_on_set}",
                error_code="STORE_002",
            ) from self.fail_on_set
        self._document = deepcopy(document)
        self._version = read_document_version(document)
        self.writes.append(deepcopy(document))


class FileConfigStore:
    """
    Settings kept in a JSON (``.json``) or YAML (``.yaml``/``.yml``) file.

    The file holds a mapping; the settings document lives under ``storage_key``
    and other keys in the file are preserved on write. Writes go to a temporary
    file in the same directory which then replaces the original, so readers see
    either the old or the new document, never a partial one.
    """

    def __init__(self, path: Union[str, Path], storage_key: str = DEFAULT_STORAGE_KEY) -> None:
        self.path = Path(path)
        self.storage_key = storage_key
        suffix = self.path.suffix.lower()
        if suffix not in (".json", ".yaml", ".yml"):
            raise StoreError(
                f"Unsupported settings file type '{suffix}'",
                error_code="STORE_003",
                context={"store_path": self.path},
            )
        self._format = "json" if suffix == ".json" else "yaml"

    def __repr__(self) -> str:
        return f"FileConfigStore(path={str(self.path)!r}, storage_key={self.storage_key!r})"

    async def get(self) -> StoredDocument:
        return await asyncio.to_thread(self.read)

    async def set(self, document: Dict[str, Any]) -> None:
        await asyncio.to_thread(self.write, document)

    def read(self) -> StoredDocument:
        """Blocking read used by ``get`` and the CLI."""
        payload = self._load_payload()
        document = payload.get(self.storage_key)
        if document is None:
            logger.debug(f"No settings stored under '{self.storage_key}' in {self.path}")
            return None, None
        return document, read_document_version(document)

    def write(self, document: Dict[str, Any]) -> None:
        """Blocking atomic write used by ``set`` and the CLI."""
        payload = self._load_payload()
        payload[self.storage_key] = document

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    if self._format == "json":
                        json.dump(payload, handle, indent=2, ensure_ascii=False)
                    else:
                        yaml.safe_dump(payload, handle, sort_keys=False, allow_unicode=True)
                os.replace(tmp_name, self.path)
            except BaseException:
                _unlink_quietly(tmp_name)
                raise
        except (OSError, TypeError, ValueError, yaml.YAMLError) as e:
            raise StoreError(
                f"Failed to write settings: {e}",
                error_code="STORE_002",
                context={"store_path": self.path, "storage_key": self.storage_key},
            ) from e

        logger.info(f"Settings written to {self.path} under '{self.storage_key}'")

    def _load_payload(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as handle:
                if self._format == "json":
                    payload = json.load(handle)
                else:
                    payload = yaml.safe_load(handle)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise StoreError(
                f"Failed to read settings: {e}",
                error_code="STORE_001",
                context={"store_path": self.path},
            ) from e

        if payload is None:
            return {}
        if not isinstance(payload, dict):
            raise StoreError(
                f"Settings file must contain a mapping, got {type(payload).__name__}",
                error_code="STORE_003",
                context={"store_path": self.path},
            )
        return payload


def _unlink_quietly(path: Union[str, Path]) -> None:
    """Remove a leftover temporary file, ignoring a file that is already gone."""
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass


__all__ = [
    "DEFAULT_STORAGE_KEY",
    "ConfigStore",
    "InMemoryConfigStore",
    "FileConfigStore",
]
