import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from tortoise import Tortoise
from tortoise.transactions import in_transaction

from pos_engine.core.config import DB_URL
from pos_engine.core.errors import OrderEngineError, TransactionAbortedError

# Set logging level for Tortoise ORM
logging.getLogger('tortoise').setLevel(logging.INFO)
log = logging.getLogger("db")

# Define all models modules for the ORM
MODELS_MODULES = [
    "pos_engine.models.catalog",
    "pos_engine.models.inventory",
    "pos_engine.models.order",
    "pos_engine.models.outbox",
    "pos_engine.models.processed_event",
]

# One logical writer at a time: every mutating unit of work holds this lock,
# so stock read-modify-writes and daily counter increments never interleave.
_write_lock = asyncio.Lock()


async def init_db(db_url: Optional[str] = None):
    """Initializes the Tortoise ORM connection and generates schemas."""
    global _write_lock
    db_url = db_url or DB_URL
    # Fresh lock per open store, bound to the loop that opened it
    _write_lock = asyncio.Lock()
    try:
        await Tortoise.init(
            db_url=db_url,
            modules={"models": MODELS_MODULES},
        )
        # Generate the database schema (create tables)
        await Tortoise.generate_schemas(safe=True)
        log.info("Database connection established and schemas generated.")
    except Exception as e:
        log.critical(f"Could not connect to database at {db_url}. Error: {e}")
        # Re-raise to prevent the application from starting without a database
        raise


async def close_db():
    """Closes all database connections."""
    await Tortoise.close_connections()
    log.info("Database connections closed.")


@asynccontextmanager
async def unit_of_work():
    """
    Serialized, atomic unit of work.

    Holds the process-wide write lock for the whole transaction and yields the
    transaction connection, which callers pass down as ``conn``. Domain errors
    propagate as-is; anything else is reported as TransactionAbortedError.
    Either way the transaction is rolled back.
    """
    async with _write_lock:
        try:
            async with in_transaction() as conn:
                yield conn
        except OrderEngineError:
            raise
        except Exception as e:
            log.error(f"Unit of work rolled back: {e!r}")
            raise TransactionAbortedError(str(e) or e.__class__.__name__) from e


@asynccontextmanager
async def joined(conn=None):
    """Joins the caller's unit of work when ``conn`` is given, otherwise opens one."""
    if conn is not None:
        yield conn
    else:
        async with unit_of_work() as own_conn:
            yield own_conn
