# === NAVMAP v1 ===
# {
#   "module": "LauncherAdmin.DLCCatalog.documents",
#   "purpose": "Document store interface, in-memory and JSON-file implementations, and app document access",
#   "sections": [
#     {"id": "protocol", "name": "DocumentStore protocol", "anchor": "PROTO", "kind": "api"},
#     {"id": "memory", "name": "InMemoryDocumentStore", "anchor": "MEM", "kind": "api"},
#     {"id": "jsonfile", "name": "JsonFileDocumentStore", "anchor": "FILE", "kind": "api"},
#     {"id": "apps", "name": "AppRepository", "anchor": "APP", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Key-value document storage for app documents.

The engine only needs atomic per-document reads and writes plus change
notification.  ``set`` replaces a whole document; ``merge`` replaces the
given top-level keys and leaves the rest alone.  Concurrent admins racing on
the same document is accepted: the last writer wins.
"""

from __future__ import annotations

import copy
import json
import logging
import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

from pydantic import ValidationError

from .errors import PersistenceError
from .manifests import write_json_atomic
from .migration import migrate_to_build_types
from .models import BUILD_NAMES, BuildName, BuildTypeData

__all__ = [
    "Listener",
    "DocumentStore",
    "InMemoryDocumentStore",
    "JsonFileDocumentStore",
    "AppRepository",
]

LOGGER = logging.getLogger("LauncherAdmin.DLCCatalog.documents")

Listener = Callable[[str, Optional[Dict[str, Any]]], None]
_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")

# --- DocumentStore protocol ----------------------------------------------------


class DocumentStore(Protocol):
    def get(self, key: str) -> Optional[Dict[str, Any]]:
        ...

    def set(self, key: str, data: Mapping[str, Any]) -> None:
        ...

    def merge(self, key: str, partial: Mapping[str, Any]) -> None:
        ...

    def subscribe(self, key: str, listener: Listener) -> Callable[[], None]:
        ...


class _ListenerRegistry:
    def __init__(self) -> None:
        self._listeners: Dict[str, List[Listener]] = {}

    def subscribe(self, key: str, listener: Listener) -> Callable[[], None]:
        self._listeners.setdefault(key, []).append(listener)

        def _unsubscribe() -> None:
            listeners = self._listeners.get(key, [])
            if listener in listeners:
                listeners.remove(listener)

        return _unsubscribe

    def notify(self, key: str, document: Optional[Dict[str, Any]]) -> None:
        for listener in list(self._listeners.get(key, ())):
            try:
                listener(key, copy.deepcopy(document))
            except Exception:  # pragma: no cover - listener bugs must not undo a committed write
                LOGGER.exception("document listener failed", extra={"stage": "store", "key": key})


# --- InMemoryDocumentStore -----------------------------------------------------


class InMemoryDocumentStore:
    """Dictionary-backed store; documents are deep-copied in and out."""

    def __init__(self, documents: Optional[Mapping[str, Mapping[str, Any]]] = None) -> None:
        self._documents: Dict[str, Dict[str, Any]] = {
            key: copy.deepcopy(dict(value)) for key, value in (documents or {}).items()
        }
        self._registry = _ListenerRegistry()

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        document = self._documents.get(key)
        return copy.deepcopy(document) if document is not None else None

    def set(self, key: str, data: Mapping[str, Any]) -> None:
        self._documents[key] = copy.deepcopy(dict(data))
        self._registry.notify(key, self._documents[key])

    def merge(self, key: str, partial: Mapping[str, Any]) -> None:
        document = self._documents.setdefault(key, {})
        document.update(copy.deepcopy(dict(partial)))
        self._registry.notify(key, document)

    def subscribe(self, key: str, listener: Listener) -> Callable[[], None]:
        return self._registry.subscribe(key, listener)


# --- JsonFileDocumentStore -----------------------------------------------------


class JsonFileDocumentStore:
    """One ``<key>.json`` file per document under ``root``, written atomically."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root).expanduser()
        self._registry = _ListenerRegistry()

    def _path(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise PersistenceError(f"Invalid document key '{key}'", operation="resolve", key=key)
        return self.root / f"{key}.json"

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        path = self._path(key)
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as exc:
            raise PersistenceError(
                f"Could not read document '{key}' from {path}: {exc}", operation="read", key=key
            ) from exc
        if not isinstance(payload, dict):
            raise PersistenceError(
                f"Document '{key}' at {path} is not a JSON object", operation="read", key=key
            )
        return payload

    def set(self, key: str, data: Mapping[str, Any]) -> None:
        path = self._path(key)
        try:
            write_json_atomic(path, dict(data))
        except (OSError, TypeError, ValueError) as exc:
            raise PersistenceError(
                f"Could not write document '{key}' to {path}: {exc}", operation="write", key=key
            ) from exc
        self._registry.notify(key, dict(data))

    def merge(self, key: str, partial: Mapping[str, Any]) -> None:
        document = self.get(key) or {}
        document.update(dict(partial))
        self.set(key, document)

    def subscribe(self, key: str, listener: Listener) -> Callable[[], None]:
        return self._registry.subscribe(key, listener)


# --- AppRepository -------------------------------------------------------------


def _invalid_build(app_id: Optional[str], name: BuildName, exc: ValidationError) -> PersistenceError:
    problems: List[str] = []
    for error in exc.errors():
        loc = error.get("loc") or ()
        if len(loc) > 1 and loc[0] == "dlcs":
            subject = f"DLC '{loc[1]}'"
        else:
            subject = ".".join(str(part) for part in loc) or "build"
        problems.append(f"{subject}: {error.get('msg')}")
    owner = f" for app '{app_id}'" if app_id else ""
    LOGGER.error(
        "stored build failed validation",
        extra={"stage": "store", "app_id": app_id, "build": name.value, "problems": problems},
    )
    return PersistenceError(
        f"Stored {name.value} build{owner} is invalid: " + "; ".join(problems),
        operation="read",
        key=app_id,
    )


class AppRepository:
    """App documents keyed by app id, migrated to ``buildTypes`` on read."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def load(self, app_id: str) -> Dict[str, Any]:
        """Return the app document (``{}`` when absent) in ``buildTypes`` form."""

        document = self.store.get(app_id) or {}
        return migrate_to_build_types(document)

    def build_states(
        self,
        document: Mapping[str, Any],
        *,
        app_id: Optional[str] = None,
    ) -> Dict[BuildName, Optional[BuildTypeData]]:
        """Validate each stored build.

        Raises:
            PersistenceError: a stored build no longer matches the record schema.
        """

        raw = document.get("buildTypes") or {}
        states: Dict[BuildName, Optional[BuildTypeData]] = {}
        for name in BUILD_NAMES:
            data = raw.get(name.value)
            if data is None:
                states[name] = None
                continue
            try:
                states[name] = BuildTypeData.model_validate(data)
            except ValidationError as exc:
                raise _invalid_build(app_id, name, exc) from exc
        return states

    def build_state(self, app_id: str, build: object) -> BuildTypeData:
        name = BuildName.parse(build)
        state = self.build_states(self.load(app_id), app_id=app_id).get(name)
        return state or BuildTypeData()

    def save(self, app_id: str, document: Mapping[str, Any], *, operation: str = "save") -> None:
        """Replace the whole app document; rejected writes raise :class:`PersistenceError`."""

        try:
            self.store.set(app_id, document)
        except PersistenceError:
            raise
        except Exception as exc:
            raise PersistenceError(
                f"{operation}: document store rejected write for app '{app_id}': {exc}",
                operation=operation,
                key=app_id,
            ) from exc

    def merge(self, app_id: str, partial: Mapping[str, Any], *, operation: str = "merge") -> None:
        try:
            self.store.merge(app_id, partial)
        except PersistenceError:
            raise
        except Exception as exc:
            raise PersistenceError(
                f"{operation}: document store rejected merge for app '{app_id}': {exc}",
                operation=operation,
                key=app_id,
            ) from exc
