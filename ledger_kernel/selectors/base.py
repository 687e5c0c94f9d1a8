"""
Module: ledger_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/ and models/.
    MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: selectors never add, delete, flush or commit.
    - Explicit tenancy: every public selector method takes ``tenant_id`` and
      filters on it.  There is no ambient tenant.
    - DTO return convention: selectors return frozen dataclasses, not ORM
      instances.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Contract:
        Accept a Session from the caller, perform read-only queries, return
        DTOs.  The caller owns the session and its transaction scope.
    """

    def __init__(self, session: Session):
        self.session = session
