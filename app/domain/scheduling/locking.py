"""
Per-owner serialization for check-then-insert scheduling.

Two requests for the same professional must not both pass the overlap check
and then both insert. Within one process a lock per owner orders them; across
workers the owner row is locked with SELECT ... FOR UPDATE until the
transaction ends (PostgreSQL; SQLite serializes writers on its own).
"""

import logging
from contextlib import contextmanager
from threading import Lock
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...errors import NotFoundError, StorageError
from .repository import SessionRepository

logger = logging.getLogger(__name__)

_owner_locks: dict[int, Lock] = {}
_registry_lock = Lock()


def _lock_for(owner_id: int) -> Lock:
    with _registry_lock:
        lock = _owner_locks.get(owner_id)
        if lock is None:
            lock = _owner_locks[owner_id] = Lock()
        return lock


@contextmanager
def owner_transaction(db: Session, owner_id: int) -> Iterator[Session]:
    """
    Run a block as one serialized transaction for owner_id.

    Commits when the block finishes, rolls back on any exception. Database
    failures are re-raised as StorageError so nothing partial is left behind.
    """
    with _lock_for(owner_id):
        try:
            if SessionRepository.lock_owner(db, owner_id) is None:
                raise NotFoundError("Professional not found")
            yield db
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"❌ Transaction failed for owner {owner_id}: {e}")
            raise StorageError() from e
        except Exception:
            db.rollback()
            raise
