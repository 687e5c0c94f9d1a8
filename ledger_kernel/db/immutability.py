"""
Append-only enforcement for ledger facts and the audit trail.

===============================================================================
WHY THIS EXISTS
===============================================================================

A posted ledger entry is a financial fact.  Corrections happen through the
reversal + re-post pattern (an Adjustment entry that references the original),
never by editing or deleting rows.  This module enforces that on the write
path, independently of the posting services' own idempotency logic:

  check_append_only(session)
    - Explicit guard.  LedgerWriter and IdempotencyGate call it inside the
      transaction, before flush/commit, on every ledger write.

  register_immutability_listeners()
    - Session-level hooks for every other code path:
        before_flush    -> runs check_append_only on the pending unit of work
        do_orm_execute  -> blocks bulk UPDATE / DELETE on protected tables,
                           ORM or Core (update(Table), delete(Table))

  install_immutability_triggers(engine)  (db/triggers.py)
    - PostgreSQL triggers for writes that bypass the Session entirely.

If a check fails, ImmutabilityViolationError is raised and the transaction is
aborted.  The database is never modified.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity              | When Immutable           | Why
--------------------|--------------------------|---------------------------------
LedgerEntry         | ALWAYS (from creation)   | One fact per source document
LedgerLine          | ALWAYS (from creation)   | Lines are part of the entry
LedgerSourceLink    | ALWAYS (from creation)   | Provenance cannot be rewritten
AuditEvent          | ALWAYS (from creation)   | Audit trail is append-only

Snapshots, processing jobs, receipts and reconciliation runs are mutable by
contract and are not covered here.

===============================================================================
USAGE
===============================================================================

    from ledger_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup

To temporarily disable (TESTS ONLY - never in production):

    from ledger_kernel.db.immutability import unregister_immutability_listeners
    unregister_immutability_listeners()
"""

from sqlalchemy import event
from sqlalchemy.orm import ORMExecuteState, Session

from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

APPEND_ONLY_REASON = "ledger is append-only"


def _protected_classes() -> tuple[type, ...]:
    # Inline import: models import from db
    from ledger_kernel.models.audit_event import AuditEvent
    from ledger_kernel.models.ledger import LedgerEntry, LedgerLine, LedgerSourceLink

    return (LedgerEntry, LedgerLine, LedgerSourceLink, AuditEvent)


def _block(entity_type: str, entity_id: str, operation: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=f"{APPEND_ONLY_REASON} ({operation})",
    )


def check_append_only(session: Session) -> None:
    """
    Reject any pending modification or deletion of an append-only record.

    Preconditions:
        Called inside the transaction that performs the ledger write, before
        flush or commit.
    Raises:
        ImmutabilityViolationError: on the first protected row found in
            session.dirty with net column changes, or in session.deleted.
    """
    protected = _protected_classes()

    for obj in session.deleted:
        if isinstance(obj, protected):
            _block(type(obj).__name__, str(obj.id), "delete")

    for obj in session.dirty:
        if isinstance(obj, protected) and session.is_modified(
            obj, include_collections=False
        ):
            _block(type(obj).__name__, str(obj.id), "update")


def _check_before_flush(session, flush_context, instances):
    check_append_only(session)


def _check_bulk_statement(orm_execute_state: ORMExecuteState):
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return
    operation = "bulk_update" if orm_execute_state.is_update else "bulk_delete"

    mapper = orm_execute_state.bind_mapper
    if mapper is not None and issubclass(mapper.class_, _protected_classes()):
        _block(mapper.class_.__name__, "*", operation)

    # Core update(Table) / delete(Table) carry no mapper
    target = getattr(orm_execute_state.statement, "table", None)
    for cls in _protected_classes():
        if target is not None and target.name == cls.__table__.name:
            _block(cls.__name__, "*", operation)


def register_immutability_listeners():
    """
    Register the append-only session hooks.

    Call once after models are imported, before any database operations.
    Idempotent.
    """
    if not event.contains(Session, "before_flush", _check_before_flush):
        event.listen(Session, "before_flush", _check_before_flush)
    if not event.contains(Session, "do_orm_execute", _check_bulk_statement):
        event.listen(Session, "do_orm_execute", _check_bulk_statement)


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove the append-only session hooks.

    WARNING: Only use this in tests.  The explicit check_append_only guard
    called by the ledger writer stays in force regardless.
    """
    _safe_remove_listener(Session, "before_flush", _check_before_flush)
    _safe_remove_listener(Session, "do_orm_execute", _check_bulk_statement)
