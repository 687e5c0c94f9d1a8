"""Cooperative cancellation signal passed to every handler invocation."""

import threading

from ledger_kernel.exceptions import HandlerCancelledError


class CancellationToken:
    """
    Thread-safe cancellation flag.

    The idempotency gate checks the token before running work and again
    before commit; a cancelled invocation rolls back its savepoint so no
    partial state is persisted.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, job_type: str | None = None) -> None:
        if self._event.is_set():
            raise HandlerCancelledError(job_type)


