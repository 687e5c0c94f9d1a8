"""
ledger_services.extractor -- Document extraction collaborator.

Responsibility:
    Defines the interface to the external OCR / document-extraction engine
    and a scripted fake for local runs and tests.  The engine itself is a
    black box returning normalized receipt fields plus its own confidence.

Architecture position:
    Services -- collaborator boundary.  Called once per admitted
    ``receipt.extract`` job by ReceiptExtractionHandler.

Failure modes:
    - Any exception raised by ``extract`` propagates as handler failure so
      transport redelivery retries it.  There is no internal retry.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, BinaryIO
from uuid import UUID

from ledger_kernel.domain.documents import NormalizedReceipt


@dataclass(frozen=True)
class ExtractedReceipt:
    """What the extraction engine returns for one document."""

    date: date | None = None
    vendor: str | None = None
    total: Decimal | None = None
    tax: Decimal | None = None
    currency: str = "CAD"
    confidence: Decimal = Decimal("0")
    raw_payload: dict[str, Any] = field(default_factory=dict)
    normalized_payload: dict[str, Any] = field(default_factory=dict)

    def to_document(self) -> NormalizedReceipt:
        return NormalizedReceipt(
            date=self.date,
            vendor=self.vendor,
            total=self.total,
            tax=self.tax,
            currency=self.currency,
        )


class ReceiptExtractor(ABC):
    """Extract(documentStream) -> fields + confidence."""

    model_version: str = "unknown"

    @abstractmethod
    def extract(self, stream: BinaryIO) -> ExtractedReceipt:
        ...


class FakeReceiptExtractor(ReceiptExtractor):
    """
    Scripted extractor keyed by file object id.

    ``script`` registers the result for a file; ``fail`` makes the next
    ``failures`` calls for it raise ConnectionError.  The fake reads
    the stream's first line as the file object id, which is how tests store
    documents in InMemoryDocumentStore.
    """

    model_version = "fake-extractor-1"

    def __init__(self) -> None:
        self._results: dict[UUID, ExtractedReceipt] = {}
        self._failures: dict[UUID, int] = {}
        self._lock = threading.Lock()
        self.calls: list[UUID] = []

    @staticmethod
    def document_bytes(file_object_id: UUID) -> bytes:
        return f"{file_object_id}\n".encode()

    def script(self, file_object_id: UUID, result: ExtractedReceipt) -> None:
        with self._lock:
            self._results[file_object_id] = result

    def fail(self, file_object_id: UUID, failures: int = 1) -> None:
        with self._lock:
            self._failures[file_object_id] = failures

    def extract(self, stream: BinaryIO) -> ExtractedReceipt:
        file_object_id = UUID(stream.readline().decode().strip())
        with self._lock:
            self.calls.append(file_object_id)
            remaining = self._failures.get(file_object_id, 0)
            if remaining > 0:
                self._failures[file_object_id] = remaining - 1
                raise ConnectionError("extractor unavailable")
            result = self._results.get(file_object_id)
        if result is None:
            raise LookupError(f"no extraction scripted for {file_object_id}")
        return result
