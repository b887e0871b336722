from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from allocator.core.config import get_settings
from allocator.core.exceptions import AppError, ConflictError, StoreError

logger = logging.getLogger(__name__)

settings = get_settings()

_connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}

engine = create_engine(
    settings.database_url,
    echo=settings.database_echo,
    pool_pre_ping=True,
    connect_args=_connect_args,
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """Run one public operation as a single transaction.

    Commits when the block exits cleanly and rolls back on any error, so a failed
    operation never leaves partial rows behind. Uniqueness violations mean a concurrent
    writer claimed the same instructor, section or room slot first.
    """
    try:
        yield db
        db.commit()
    except AppError:
        db.rollback()
        raise
    except IntegrityError as exc:
        db.rollback()
        logger.warning("Allocation rolled back on integrity violation: %s", exc.orig)
        raise ConflictError(
            "A concurrent allocation claimed the same slot; resubmit the operation",
            details={"reason": "integrity_violation"},
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Store transaction failed")
        raise StoreError() from exc
    except BaseException:
        db.rollback()
        raise
