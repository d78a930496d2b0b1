"""Task stores for stacker_lite: in-memory and JSON-backed with atomic writes.

The engine itself never touches storage. A store is owned by the host and
handed to ``PlannerService``; records go through the sanitizer on every load
so downstream code only ever sees valid MasterTask objects.

On-disk format of ``JsonTaskStore`` is a JSON object::

    {"tasks": [<camelCase task record>, ...], "history": [...]}

A bare JSON list at the root is accepted as the task list (older files).
"""

from __future__ import annotations

import contextlib
import copy
import json
import logging
import os
import tempfile
import threading
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from .lite_datetime_utils import Clock
from .lite_datetime_utils import today as default_today
from .lite_exceptions import StoreError
from .lite_models import MasterTask
from .lite_sanitizer import drop_ghost_records, sanitize_all

logger = logging.getLogger(__name__)


class TaskStore(Protocol):
    """Anything the planner service can load tasks from and save tasks to."""

    def load(self) -> list[MasterTask]: ...

    def save(self, tasks: Iterable[MasterTask]) -> None: ...

    def archive(self, tasks: Iterable[MasterTask]) -> None: ...

    def transaction(self) -> contextlib.AbstractContextManager[TaskTransaction]: ...


@dataclass
class TaskTransaction:
    """Working copy handed out by ``transaction()``; reassign ``tasks`` to change them."""

    tasks: list[MasterTask]
    archived: list[MasterTask] = field(default_factory=list)

    def archive(self, tasks: Iterable[MasterTask]) -> None:
        self.archived.extend(tasks)


class _DocumentStore:
    """Shared load/save/history/transaction logic over a ``{"tasks", "history"}`` document."""

    def __init__(self, clock: Clock = default_today) -> None:
        self._clock = clock
        self._lock = threading.RLock()

    # ---- document I/O, provided by subclasses ----

    def _read_document(self, strict: bool = False) -> dict[str, Any]:
        """Return the stored document.

        With ``strict`` an existing but unreadable document raises StoreError
        instead of reading as empty, so it is never overwritten.
        """
        raise NotImplementedError

    def _write_document(self, document: dict[str, Any]) -> None:
        raise NotImplementedError

    # ---- public API ----

    def load(self) -> list[MasterTask]:
        """Load and sanitize all tasks; persisted ghost occurrences are dropped."""
        with self._lock:
            raw = self._read_document().get("tasks")
            return drop_ghost_records(sanitize_all(raw, self._clock))

    def save(self, tasks: Iterable[MasterTask]) -> None:
        """Replace the stored task list.

        Raises:
            StoreError: If the document cannot be written
        """
        with self._lock:
            document = self._read_document(strict=True)
            document["tasks"] = [t.to_record() for t in tasks]
            self._write_document(document)

    def load_history(self) -> list[MasterTask]:
        """Tasks previously archived (completed or deleted)."""
        with self._lock:
            return sanitize_all(self._read_document().get("history"), self._clock)

    def archive(self, tasks: Iterable[MasterTask]) -> None:
        """Append tasks to the history archive.

        Raises:
            StoreError: If the document cannot be written
        """
        records = [t.to_record() for t in tasks]
        if not records:
            return
        with self._lock:
            document = self._read_document(strict=True)
            history = document.get("history")
            document["history"] = [*(history if isinstance(history, list) else []), *records]
            self._write_document(document)
            logger.debug("Archived %d tasks", len(records))

    @contextlib.contextmanager
    def transaction(self) -> Iterator[TaskTransaction]:
        """Read-modify-write under the store lock.

        The working copy is saved when the block exits normally and discarded
        if it raises, so concurrent callers never interleave partial updates.

        Raises:
            StoreError: If the existing document is unreadable or cannot be written
        """
        with self._lock:
            document = self._read_document(strict=True)
            txn = TaskTransaction(tasks=drop_ghost_records(sanitize_all(document.get("tasks"), self._clock)))
            yield txn
            document["tasks"] = [t.to_record() for t in txn.tasks]
            if txn.archived:
                history = document.get("history")
                document["history"] = [
                    *(history if isinstance(history, list) else []),
                    *(t.to_record() for t in txn.archived),
                ]
            self._write_document(document)


class InMemoryTaskStore(_DocumentStore):
    """Store kept in process memory, mainly for tests and embedding."""

    def __init__(self, records: Iterable[Any] = (), clock: Clock = default_today) -> None:
        super().__init__(clock)
        self._document: dict[str, Any] = {"tasks": list(records), "history": []}

    def _read_document(self, strict: bool = False) -> dict[str, Any]:
        return copy.deepcopy(self._document)

    def _write_document(self, document: dict[str, Any]) -> None:
        self._document = copy.deepcopy(document)


class JsonTaskStore(_DocumentStore):
    """Persistent store backed by a single JSON file with atomic replace on write."""

    def __init__(self, path: str | os.PathLike[str], clock: Clock = default_today) -> None:
        """Create a JsonTaskStore.

        Args:
            path: Path to the JSON file (created on first save)
            clock: Source of "today" for the sanitizer
        """
        super().__init__(clock)
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _read_document(self, strict: bool = False) -> dict[str, Any]:
        if not self._path.exists():
            logger.debug("Task store file not found; starting empty: %s", self._path)
            return {"tasks": [], "history": []}

        try:
            with self._path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            if strict:
                raise StoreError(f"Refusing to overwrite unreadable task store {self._path}: {exc}") from exc
            logger.warning("Failed to read task store %s: %s", self._path, exc)
            return {"tasks": [], "history": []}

        if isinstance(data, list):
            return {"tasks": data, "history": []}
        if not isinstance(data, dict) or not isinstance(data.get("tasks") or [], list):
            if strict:
                raise StoreError(f"Refusing to overwrite task store {self._path}: unexpected document shape")
            logger.warning("Task store %s has an unexpected shape, ignoring contents", self._path)
            return {"tasks": [], "history": []}
        return data

    def _write_document(self, document: dict[str, Any]) -> None:
        """Write to a temporary file in the same directory, then replace into place."""
        tmp_path = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", dir=self._path.parent, delete=False, encoding="utf-8", suffix=".tmp"
            ) as tf:
                tmp_path = Path(tf.name)
                json.dump(document, tf, ensure_ascii=False, indent=2)
                tf.flush()
                with contextlib.suppress(OSError):
                    os.fsync(tf.fileno())
            tmp_path.replace(self._path)
        except (OSError, TypeError, ValueError) as exc:
            if tmp_path is not None:
                with contextlib.suppress(OSError):
                    tmp_path.unlink()
            raise StoreError(f"Failed to persist task store to {self._path}: {exc}") from exc

        logger.debug("Persisted %d tasks to %s", len(document.get("tasks", [])), self._path)
