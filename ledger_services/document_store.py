"""
ledger_services.document_store -- Binary file storage collaborator.

Binary storage is external to the ledger core.  Handlers only need to open a
stored file object as a stream for the extractor, so the interface is that
one call plus ``put`` for local runs and tests.
"""

import io
import threading
from abc import ABC, abstractmethod
from typing import BinaryIO
from uuid import UUID

from ledger_kernel.exceptions import DocumentNotFoundError


class DocumentStore(ABC):
    """Read access to uploaded files by file object id."""

    @abstractmethod
    def open(self, tenant_id: UUID, file_object_id: UUID) -> BinaryIO:
        """
        Open a stored file for reading.

        Raises:
            DocumentNotFoundError: no such file for the tenant.
        """


class InMemoryDocumentStore(DocumentStore):
    """Dict-backed store, keyed by (tenant_id, file_object_id)."""

    def __init__(self) -> None:
        self._files: dict[tuple[UUID, UUID], bytes] = {}
        self._lock = threading.Lock()

    def put(self, tenant_id: UUID, file_object_id: UUID, content: bytes) -> None:
        with self._lock:
            self._files[(tenant_id, file_object_id)] = content

    def open(self, tenant_id: UUID, file_object_id: UUID) -> BinaryIO:
        with self._lock:
            content = self._files.get((tenant_id, file_object_id))
        if content is None:
            raise DocumentNotFoundError(str(file_object_id))
        return io.BytesIO(content)
