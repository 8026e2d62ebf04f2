from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class _Entry:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.holders = 0


_registry_guard = threading.Lock()
_document_locks: dict[str, _Entry] = {}


def _acquire_entry(document_id: str) -> _Entry:
    with _registry_guard:
        entry = _document_locks.get(document_id)
        if entry is None:
            entry = _document_locks[document_id] = _Entry()
        entry.holders += 1
        return entry


def _release_entry(document_id: str, entry: _Entry) -> None:
    with _registry_guard:
        entry.holders -= 1
        if entry.holders == 0:
            del _document_locks[document_id]


@contextmanager
def document_lock(document_id: str) -> Iterator[None]:
    """
    Serialize workflow transitions on one document within this process.

    Entries live only while some thread holds or waits on them. Cross-process
    writers are serialized by the row lock and the `row_version` check in the
    workflow engine.
    """
    entry = _acquire_entry(document_id)
    try:
        with entry.lock:
            yield
    finally:
        _release_entry(document_id, entry)
