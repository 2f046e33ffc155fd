import logging
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from loanledger.core.config import settings
from loanledger.core.exceptions import LedgerError, TransientError

logger = logging.getLogger(__name__)


def make_engine(url: str, **kwargs):
    """Build an engine for the ledger store.

    SQLite connections are shared across request threads, so the same-thread
    check is disabled there, and foreign keys are switched on per connection
    since SQLite leaves them off. Other backends get a pre-ping pool.
    """
    if not url.startswith("sqlite"):
        kwargs.setdefault("pool_pre_ping", True)
        kwargs.setdefault("pool_size", 5)
        kwargs.setdefault("max_overflow", 10)
        return create_engine(url, echo=False, **kwargs)

    kwargs.setdefault("connect_args", {"check_same_thread": False})
    sqlite_engine = create_engine(url, echo=False, **kwargs)

    @event.listens_for(sqlite_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return sqlite_engine


engine = make_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session):
    """Run a block as one ledger transaction.

    Commits when the block finishes, rolls back on any error. Domain errors
    propagate unchanged; unmapped integrity violations and driver-level
    failures (lock timeouts, serialization failures, lost connections) are
    reported as TransientError.

    Usage:
        with transaction(db):
            loan.status = LoanStatus.CLOSED
            ...
    """
    try:
        yield db
        db.commit()
    except LedgerError:
        db.rollback()
        raise
    except IntegrityError as e:
        db.rollback()
        logger.warning("Ledger transaction hit an integrity violation: %s", e.orig)
        raise TransientError("The ledger could not apply this change, please retry") from e
    except DBAPIError as e:
        db.rollback()
        logger.exception("Ledger transaction failed")
        raise TransientError("The ledger is temporarily unavailable, please retry") from e
    except Exception:
        db.rollback()
        raise
