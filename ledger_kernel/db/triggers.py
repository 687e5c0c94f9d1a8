"""
Module: ledger_kernel.db.triggers
Responsibility: Installing and verifying the PostgreSQL append-only triggers.
    This is the database-level complement to the session listeners in
    db/immutability.py, and catches writes that never pass through a
    Session (raw SQL, psql, migrations).
Architecture position: Kernel > DB.  May import from db/ only.  MUST NOT
    import from models/, services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - ledger_entries, ledger_lines, ledger_source_links and audit_events
      reject every UPDATE and DELETE.

Failure modes:
    - PostgreSQL RAISE EXCEPTION on any violation (surfaced by SQLAlchemy as
      InternalError / DBAPIError).
    - SQLite has no equivalent here; the session listeners are the only
      guard on that backend.
"""

from sqlalchemy import text
from sqlalchemy.engine import Engine

from ledger_kernel.logging_config import get_logger

logger = get_logger("db.triggers")

APPEND_ONLY_TABLES = (
    "ledger_entries",
    "ledger_lines",
    "ledger_source_links",
    "audit_events",
)

_FUNCTION_SQL = """
CREATE OR REPLACE FUNCTION ledger_reject_modification() RETURNS trigger AS $$
BEGIN
    RAISE EXCEPTION 'ledger is append-only: % on % rejected', TG_OP, TG_TABLE_NAME
        USING ERRCODE = 'integrity_constraint_violation';
END;
$$ LANGUAGE plpgsql;
"""


def _trigger_name(table: str, operation: str) -> str:
    return f"trg_{table}_immutability_{operation.lower()}"


ALL_TRIGGER_NAMES = [
    _trigger_name(table, operation)
    for table in APPEND_ONLY_TABLES
    for operation in ("UPDATE", "DELETE")
]


def _trigger_sql(table: str) -> str:
    statements = []
    for operation in ("UPDATE", "DELETE"):
        name = _trigger_name(table, operation)
        statements.append(f"DROP TRIGGER IF EXISTS {name} ON {table};")
        statements.append(
            f"CREATE TRIGGER {name} BEFORE {operation} ON {table} "
            f"FOR EACH ROW EXECUTE FUNCTION ledger_reject_modification();"
        )
    return "\n".join(statements)


def install_immutability_triggers(engine: Engine) -> None:
    """
    Install the append-only triggers.  Idempotent.

    Preconditions: Tables exist (call after create_all) and the engine is
        connected to PostgreSQL.
    """
    sql = "\n".join([_FUNCTION_SQL] + [_trigger_sql(t) for t in APPEND_ONLY_TABLES])
    with engine.connect() as conn:
        conn.execute(text(sql))
        conn.commit()
    logger.info("immutability_triggers_installed", extra={"count": len(ALL_TRIGGER_NAMES)})


def uninstall_immutability_triggers(engine: Engine) -> None:
    """
    Remove the append-only triggers.

    WARNING: Only for migrations that must rewrite history.  Re-install
    immediately afterwards.
    """
    statements = [
        f"DROP TRIGGER IF EXISTS {_trigger_name(table, op)} ON {table};"
        for table in APPEND_ONLY_TABLES
        for op in ("UPDATE", "DELETE")
    ]
    statements.append("DROP FUNCTION IF EXISTS ledger_reject_modification();")
    with engine.connect() as conn:
        conn.execute(text("\n".join(statements)))
        conn.commit()


def get_missing_triggers(engine: Engine) -> list[str]:
    """Trigger names that should be installed but are not."""
    with engine.connect() as conn:
        installed = {
            row[0]
            for row in conn.execute(
                text("SELECT tgname FROM pg_trigger WHERE tgname = ANY(:names)"),
                {"names": ALL_TRIGGER_NAMES},
            )
        }
    return sorted(set(ALL_TRIGGER_NAMES) - installed)


def triggers_installed(engine: Engine) -> bool:
    return not get_missing_triggers(engine)
