"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Handlers sit behind an at-least-once transport.  Whether a failure should be
redelivered, dropped, or treated as a business outcome is decided by the
exception TYPE, never by parsing its message:

  1. Every error has a typed class (catch by type, not message)
  2. Every class has a CODE attribute (machine-readable, log-safe)
  3. Exceptions carry structured DATA (ids, keys), which StructuredFormatter
     copies into the log record as ``exc_<field>``

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerCoreError (base)
    |
    +-- EnvelopeError
    |   +-- MalformedEnvelopeError
    |   +-- UnknownMessageTypeError
    |
    +-- ReceiptError
    |   +-- ReceiptNotFoundError
    |   +-- InvalidReceiptStateError
    |   +-- ReviewNotFoundError
    |   +-- ReviewAlreadyResolvedError
    |   +-- InvalidReviewResolutionError
    |
    +-- ExtractionError
    |   +-- ExtractionFailedError
    |   +-- DocumentNotFoundError
    |
    +-- PostingError
    |   +-- EmptyPostingError
    |   +-- ZeroAmountLineError
    |   +-- LedgerEntryNotFoundError
    |
    +-- ReversalError
    |   +-- EntryAlreadyReversedError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- PeriodError
    |   +-- InvalidPeriodKeyError
    |
    +-- ReconciliationError
    |   +-- StatementNotFoundError
    |   +-- InvalidStatementStateError
    |   +-- ReconciliationRunNotFoundError
    |   +-- YearlyStatementNotFoundError
    |   +-- AmbiguousYearlyStatementError
    |
    +-- ConfigurationError
    |   +-- InvalidConfigurationError
    |
    +-- CancellationError
        +-- HandlerCancelledError

===============================================================================
PROPAGATION
===============================================================================

Duplicate delivery, Hold and reconciliation variances are NOT errors and have
no class here.  Envelope errors are logged and dropped by the dispatcher.
Everything else propagates to the transport so redelivery applies.
ImmutabilityViolationError is a programming error and must never be caught
and suppressed.
"""


class LedgerCoreError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_CORE_ERROR"


# Envelope-related exceptions


class EnvelopeError(LedgerCoreError):
    """Base exception for message envelope errors."""

    code: str = "ENVELOPE_ERROR"


class MalformedEnvelopeError(EnvelopeError):
    """Envelope or payload could not be decoded."""

    code: str = "MALFORMED_ENVELOPE"

    def __init__(self, reason: str, message_id: str | None = None):
        self.reason = reason
        self.message_id = message_id
        super().__init__(f"Malformed envelope {message_id or '<unknown>'}: {reason}")


class UnknownMessageTypeError(EnvelopeError):
    """Envelope type is not on the allow-list."""

    code: str = "UNKNOWN_MESSAGE_TYPE"

    def __init__(self, message_type: str):
        self.message_type = message_type
        super().__init__(f"Unknown message type: {message_type}")


# Receipt-related exceptions


class ReceiptError(LedgerCoreError):
    """Base exception for receipt lifecycle errors."""

    code: str = "RECEIPT_ERROR"


class ReceiptNotFoundError(ReceiptError):
    """Receipt does not exist for the tenant."""

    code: str = "RECEIPT_NOT_FOUND"

    def __init__(self, tenant_id: str, receipt_id: str):
        self.tenant_id = tenant_id
        self.receipt_id = receipt_id
        super().__init__(f"Receipt {receipt_id} not found for tenant {tenant_id}")


class InvalidReceiptStateError(ReceiptError):
    """Receipt is not in a state that allows the requested transition."""

    code: str = "INVALID_RECEIPT_STATE"

    def __init__(self, receipt_id: str, current_status: str, expected: str):
        self.receipt_id = receipt_id
        self.current_status = current_status
        self.expected = expected
        super().__init__(
            f"Receipt {receipt_id} is {current_status}, expected {expected}"
        )


class ReviewNotFoundError(ReceiptError):
    """No open review exists for the receipt."""

    code: str = "REVIEW_NOT_FOUND"

    def __init__(self, receipt_id: str):
        self.receipt_id = receipt_id
        super().__init__(f"No open review for receipt {receipt_id}")


class ReviewAlreadyResolvedError(ReceiptError):
    """Review has already been resolved."""

    code: str = "REVIEW_ALREADY_RESOLVED"

    def __init__(self, review_id: str):
        self.review_id = review_id
        super().__init__(f"Review {review_id} is already resolved")


class InvalidReviewResolutionError(ReceiptError):
    """Corrected fields still fail the structural checks."""

    code: str = "INVALID_REVIEW_RESOLUTION"

    def __init__(self, receipt_id: str, reason: str):
        self.receipt_id = receipt_id
        self.reason = reason
        super().__init__(f"Resolution for receipt {receipt_id} rejected: {reason}")


# Extraction-related exceptions


class ExtractionError(LedgerCoreError):
    """Base exception for document extraction errors."""

    code: str = "EXTRACTION_ERROR"


class ExtractionFailedError(ExtractionError):
    """The external extractor failed."""

    code: str = "EXTRACTION_FAILED"

    def __init__(self, receipt_id: str, reason: str):
        self.receipt_id = receipt_id
        self.reason = reason
        super().__init__(f"Extraction failed for receipt {receipt_id}: {reason}")


class DocumentNotFoundError(ExtractionError):
    """File object is missing from the document store."""

    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, file_object_id: str):
        self.file_object_id = file_object_id
        super().__init__(f"Document {file_object_id} not found")


# Posting-related exceptions


class PostingError(LedgerCoreError):
    """Base exception for posting errors."""

    code: str = "POSTING_ERROR"


class EmptyPostingError(PostingError):
    """A posting request carried no lines."""

    code: str = "EMPTY_POSTING"

    def __init__(self, source_type: str, source_id: str):
        self.source_type = source_type
        self.source_id = source_id
        super().__init__(f"Posting {source_type}:{source_id} has no lines")


class ZeroAmountLineError(PostingError):
    """A manual line carried a zero amount."""

    code: str = "ZERO_AMOUNT_LINE"

    def __init__(self, line_index: int):
        self.line_index = line_index
        super().__init__(f"Line {line_index} has a zero amount")


class LedgerEntryNotFoundError(PostingError):
    """Referenced ledger entry does not exist for the tenant."""

    code: str = "LEDGER_ENTRY_NOT_FOUND"

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Ledger entry {entry_id} not found")


# Reversal-related exceptions


class ReversalError(LedgerCoreError):
    """Base exception for reversal errors."""

    code: str = "REVERSAL_ERROR"


class EntryAlreadyReversedError(ReversalError):
    """Entry has already been reversed."""

    code: str = "ENTRY_ALREADY_REVERSED"

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Entry {entry_id} has already been reversed")


# Immutability-related exceptions


class ImmutabilityError(LedgerCoreError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an append-only record.

    LedgerEntry, LedgerLine, LedgerSourceLink and AuditEvent are
    append-only from creation.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Period-related exceptions


class PeriodError(LedgerCoreError):
    """Base exception for period errors."""

    code: str = "PERIOD_ERROR"


class InvalidPeriodKeyError(PeriodError):
    """Period key does not match the period type's format."""

    code: str = "INVALID_PERIOD_KEY"

    def __init__(self, period_type: str, period_key: str):
        self.period_type = period_type
        self.period_key = period_key
        super().__init__(f"Invalid {period_type} period key: {period_key!r}")


# Reconciliation-related exceptions


class ReconciliationError(LedgerCoreError):
    """Base exception for reconciliation errors."""

    code: str = "RECONCILIATION_ERROR"


class StatementNotFoundError(ReconciliationError):
    """Statement does not exist for the tenant."""

    code: str = "STATEMENT_NOT_FOUND"

    def __init__(self, statement_id: str):
        self.statement_id = statement_id
        super().__init__(f"Statement {statement_id} not found")


class InvalidStatementStateError(ReconciliationError):
    """Statement is not in a state that allows posting."""

    code: str = "INVALID_STATEMENT_STATE"

    def __init__(self, statement_id: str, current_status: str, expected: str):
        self.statement_id = statement_id
        self.current_status = current_status
        self.expected = expected
        super().__init__(
            f"Statement {statement_id} is {current_status}, expected {expected}"
        )


class ReconciliationRunNotFoundError(ReconciliationError):
    """Reconciliation run does not exist for the tenant."""

    code: str = "RECONCILIATION_RUN_NOT_FOUND"

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Reconciliation run {run_id} not found")


class YearlyStatementNotFoundError(ReconciliationError):
    """No yearly statement exists for provider and year."""

    code: str = "YEARLY_STATEMENT_NOT_FOUND"

    def __init__(self, provider: str, period_key: str):
        self.provider = provider
        self.period_key = period_key
        super().__init__(f"No yearly {provider} statement for {period_key}")


class AmbiguousYearlyStatementError(ReconciliationError):
    """More than one yearly statement exists for provider and year."""

    code: str = "AMBIGUOUS_YEARLY_STATEMENT"

    def __init__(self, provider: str, period_key: str, count: int):
        self.provider = provider
        self.period_key = period_key
        self.count = count
        super().__init__(
            f"{count} yearly {provider} statements for {period_key}; expected exactly one"
        )


# Configuration-related exceptions


class ConfigurationError(LedgerCoreError):
    """Base exception for configuration errors."""

    code: str = "CONFIGURATION_ERROR"


class InvalidConfigurationError(ConfigurationError):
    """Configuration failed validation."""

    code: str = "INVALID_CONFIGURATION"

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("Invalid configuration: " + "; ".join(errors))


# Cancellation-related exceptions


class CancellationError(LedgerCoreError):
    """Base exception for cancellation."""

    code: str = "CANCELLATION_ERROR"


class HandlerCancelledError(CancellationError):
    """Handler invocation was cancelled before commit."""

    code: str = "HANDLER_CANCELLED"

    def __init__(self, job_type: str | None = None):
        self.job_type = job_type
        super().__init__(f"Handler cancelled ({job_type or 'unbound'})")
