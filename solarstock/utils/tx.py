"""Transaction scoping for service calls"""
from contextlib import contextmanager


@contextmanager
def unit_of_work(session, autocommit=True):
    """
    Run a block as one all-or-nothing unit.

    autocommit=True: the block owns the transaction and commits it, or rolls it
    back and re-raises on any error.
    autocommit=False: an enclosing caller owns the transaction; pending changes
    are flushed so later reads in the same transaction see them, and commit or
    rollback is left to that caller.
    """
    try:
        yield session
        if autocommit:
            session.commit()
        else:
            session.flush()
    except Exception:
        if autocommit:
            session.rollback()
        raise
