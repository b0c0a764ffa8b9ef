from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session

from storefront.utils.log import get_logger

log = get_logger(__name__)


@contextmanager
def transaction_scope(session: Session) -> Iterator[Session]:
    """
    Run a block of writes as one unit on the given Session.

    If a transaction is already active the block runs inside a SAVEPOINT
    (begin_nested) and the caller keeps ownership of the outer commit.
    Otherwise a fresh transaction is started and committed when the block
    exits cleanly. Either way an exception rolls the block back and re-raises.

    Usage:
        with transaction_scope(db):
            ... DB work ...
    """
    if session.in_transaction():
        cm = session.begin_nested()
    else:
        cm = session.begin()
    try:
        with cm:
            yield session
    except Exception:
        log.warning("transaction rolled back", exc_info=True)
        raise
