"""
IdempotencyGate -- at-most-one successful execution per logical event.

Responsibility:
    Deduplicates event delivery per tenant using the durable ProcessingJob
    ledger, runs the handler's side effects inside a savepoint, and records
    success or failure on the job row.

Architecture position:
    Kernel > Services -- imperative shell.  Every event handler in
    ``ledger_services.handlers`` runs its work through ``execute``.  The gate
    owns the commit boundaries of a handler invocation; the services it
    wraps never commit.

Invariants enforced:
    - UNIQUE (tenant_id, job_type, dedupe_key) on processing_jobs is the
      ONLY synchronization primitive.  No application-level locks; a
      concurrent duplicate loses the insert race and takes the
      IntegrityError path.
    - A Succeeded job is never executed again (ALREADY_SUCCEEDED).
    - Work runs in a savepoint: on any exception, including cancellation,
      nothing the work did is persisted.  The job is then marked Failed with
      the error message and the exception is RE-RAISED so the transport's
      redelivery policy governs retry.  The gate never swallows an
      exception after marking failure.
    - The append-only guard runs before every commit the gate makes.

Failure modes:
    - Any exception raised by work propagates unchanged.
    - IntegrityError followed by a failed lookup propagates (the row vanished,
      which cannot happen since jobs are never deleted).

Audit relevance:
    Failures produce an ``{job_type}.failed`` audit event with the error
    message.  Duplicate deliveries are logged at info level only.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ledger_kernel.db.immutability import check_append_only
from ledger_kernel.domain.cancellation import CancellationToken
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.processing_job import JobStatus, ProcessingJob
from ledger_kernel.services.auditor_service import AuditorService

logger = get_logger("services.idempotency_gate")

T = TypeVar("T")

_MAX_ERROR_LENGTH = 2000


class GateDecision(str, Enum):
    """Outcome of an admission attempt."""

    ADMITTED = "admitted"
    ALREADY_SUCCEEDED = "already_succeeded"  # Skip silently
    RETRYING = "retrying"


@dataclass(frozen=True)
class JobKey:
    """Identity of one logical event instance."""

    tenant_id: UUID
    job_type: str
    dedupe_key: str


@dataclass(frozen=True)
class Admission:
    decision: GateDecision
    job_id: UUID
    attempts: int

    @property
    def should_run(self) -> bool:
        return self.decision != GateDecision.ALREADY_SUCCEEDED


@dataclass(frozen=True)
class GateOutcome(Generic[T]):
    """Admission plus the work's return value (None when skipped)."""

    admission: Admission
    result: T | None = None

    @property
    def executed(self) -> bool:
        return self.admission.should_run


class IdempotencyGate:
    """
    Durable duplicate-delivery gate.

    Contract:
        ``admit`` inserts or revisits the job row and commits that admission
        before any work runs.  ``execute`` admits, runs work in a savepoint,
        then marks the job Succeeded and commits, or marks it Failed, commits
        and re-raises.

    Guarantees:
        - Redelivery of a succeeded event does no work.
        - Concurrent duplicates never both insert a job row.

    Non-goals:
        - Does NOT retry.  Transport redelivery is the only retry mechanism.
        - Does NOT publish messages; handlers publish after ``execute``
          returns, i.e. after commit.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auditor: AuditorService | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._auditor = auditor or AuditorService(session, self._clock)

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def admit(self, key: JobKey) -> Admission:
        """
        Admit(tenant, job_type, dedupe_key) -> ADMITTED | ALREADY_SUCCEEDED | RETRYING.

        Postconditions:
            The job row exists with status Started (unless already
            Succeeded) and the admission is committed.
        """
        now = self._clock.now()
        job = ProcessingJob(
            tenant_id=key.tenant_id,
            job_type=key.job_type,
            dedupe_key=key.dedupe_key,
            status=JobStatus.STARTED,
            attempts=1,
            created_at=now,
            updated_at=now,
        )
        try:
            with self._session.begin_nested():
                self._session.add(job)
                self._session.flush()
        except IntegrityError as exc:
            return self._revisit(key, exc)

        self._commit()
        logger.info(
            "job_admitted",
            extra={"job_type": key.job_type, "dedupe_key": key.dedupe_key},
        )
        return Admission(GateDecision.ADMITTED, job.id, 1)

    def _revisit(self, key: JobKey, exc: IntegrityError) -> Admission:
        existing = self._find(key)
        if existing is None:
            raise exc

        if existing.status == JobStatus.SUCCEEDED:
            job_id, attempts = existing.id, existing.attempts
            # Roll back the (empty) outer transaction left by the failed insert
            self._session.rollback()
            logger.info(
                "duplicate_delivery_skipped",
                extra={"job_type": key.job_type, "dedupe_key": key.dedupe_key},
            )
            return Admission(GateDecision.ALREADY_SUCCEEDED, job_id, attempts)

        existing.attempts += 1
        existing.status = JobStatus.STARTED
        existing.last_error = None
        existing.updated_at = self._clock.now()
        attempts = existing.attempts
        self._commit()
        logger.info(
            "job_retrying",
            extra={
                "job_type": key.job_type,
                "dedupe_key": key.dedupe_key,
                "attempts": attempts,
            },
        )
        return Admission(GateDecision.RETRYING, existing.id, attempts)

    def _find(self, key: JobKey) -> ProcessingJob | None:
        return self._session.execute(
            select(ProcessingJob).where(
                ProcessingJob.tenant_id == key.tenant_id,
                ProcessingJob.job_type == key.job_type,
                ProcessingJob.dedupe_key == key.dedupe_key,
            )
        ).scalar_one_or_none()

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute(
        self,
        key: JobKey,
        work: Callable[[], T],
        cancel: CancellationToken | None = None,
        correlation_id: str | None = None,
        failure_entity: tuple[str, str] | None = None,
    ) -> GateOutcome[T]:
        """
        Run ``work`` at most once successfully for ``key``.

        Args:
            key: Job identity.
            work: Side-effecting callable; must not commit.
            cancel: Checked before work and again before commit.
            correlation_id: Stamped on the failure audit event.
            failure_entity: (entity_type, entity_id) for the failure audit
                event.  Defaults to ("ProcessingJob", dedupe_key).

        Raises:
            Whatever ``work`` raises, after the job is marked Failed.
        """
        admission = self.admit(key)
        if not admission.should_run:
            return GateOutcome(admission)

        cancel = cancel or CancellationToken()
        try:
            cancel.raise_if_cancelled(key.job_type)
            with self._session.begin_nested():
                result = work()
                cancel.raise_if_cancelled(key.job_type)
                check_append_only(self._session)
        except Exception as exc:
            self._record_failure(key, admission, exc, correlation_id, failure_entity)
            raise

        self._mark_succeeded(key, admission)
        return GateOutcome(admission, result)

    def _mark_succeeded(self, key: JobKey, admission: Admission) -> None:
        job = self._session.get(ProcessingJob, admission.job_id)
        job.status = JobStatus.SUCCEEDED
        job.last_error = None
        job.updated_at = self._clock.now()
        try:
            self._commit()
        except Exception:
            # Job stays Started; redelivery retries
            self._session.rollback()
            raise
        logger.info(
            "job_succeeded",
            extra={
                "job_type": key.job_type,
                "dedupe_key": key.dedupe_key,
                "attempts": admission.attempts,
            },
        )

    def _record_failure(
        self,
        key: JobKey,
        admission: Admission,
        exc: Exception,
        correlation_id: str | None,
        failure_entity: tuple[str, str] | None,
    ) -> None:
        message = str(exc)[:_MAX_ERROR_LENGTH] or type(exc).__name__
        logger.error(
            "job_failed",
            extra={
                "job_type": key.job_type,
                "dedupe_key": key.dedupe_key,
                "attempts": admission.attempts,
            },
            exc_info=exc,
        )
        entity_type, entity_id = failure_entity or ("ProcessingJob", key.dedupe_key)
        try:
            job = self._session.get(ProcessingJob, admission.job_id)
            job.status = JobStatus.FAILED
            job.last_error = message
            job.updated_at = self._clock.now()
            self._auditor.record(
                tenant_id=key.tenant_id,
                action=f"{key.job_type}.failed",
                entity_type=entity_type,
                entity_id=entity_id,
                correlation_id=correlation_id,
                metadata={"error": message, "error_type": type(exc).__name__},
            )
            self._commit()
        except SQLAlchemyError:
            # The original exception is re-raised by the caller regardless
            self._session.rollback()
            logger.error(
                "job_failure_not_recorded",
                extra={"job_type": key.job_type, "dedupe_key": key.dedupe_key},
                exc_info=True,
            )

    def _commit(self) -> None:
        check_append_only(self._session)
        self._session.commit()
