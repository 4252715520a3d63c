"""
In-process document status store.

Stand-in for the external document storage collaborator; used by tests
and single-process deployments.
"""
from __future__ import annotations

import threading
from typing import Optional

from ..models import DocumentStatus


class InMemoryDocumentStatusStore:
    """Thread-safe document_id -> DocumentStatus map with change history."""

    def __init__(self) -> None:
        self._statuses: dict[str, DocumentStatus] = {}
        self._history: dict[str, list[DocumentStatus]] = {}
        self._lock = threading.Lock()

    def set_status(self, document_id: str, status: DocumentStatus) -> None:
        with self._lock:
            self._statuses[document_id] = status
            self._history.setdefault(document_id, []).append(status)

    def get_status(self, document_id: str) -> Optional[DocumentStatus]:
        with self._lock:
            return self._statuses.get(document_id)

    def history(self, document_id: str) -> list[DocumentStatus]:
        with self._lock:
            return list(self._history.get(document_id, []))
