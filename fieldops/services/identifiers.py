"""
Human-readable identifier allocation (T001, P001, R001, DM001, N001...)

The next identifier is derived from the highest existing one of the same
kind. Two callers can compute the same value concurrently, so insertion
goes through add_with_identifier(), which runs allocation and INSERT in a
SAVEPOINT and retries with a higher suffix when the primary key clashes.
"""
from typing import Callable, Optional, TypeVar

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import FlushError

from fieldops.config import get_settings
from fieldops.services.errors import IdentifierConflict
from fieldops.utils.logger import get_logger

settings = get_settings()
logger = get_logger(__name__)

TASK_PREFIX = "T"
PHASE_PREFIX = "P"
REPORT_PREFIX = "R"
MATERIAL_PREFIX = "M"
MATERIAL_REQUEST_PREFIX = "DM"
NOTIFICATION_PREFIX = "N"

DEFAULT_WIDTH = 3

M = TypeVar("M")


def format_identifier(prefix: str, number: int, width: int = DEFAULT_WIDTH) -> str:
    """T + 7 -> T007; numbers wider than `width` are kept whole (T1000)"""
    return f"{prefix}{str(number).zfill(width)}"


def parse_suffix(identifier: Optional[str], prefix: str) -> int:
    """Numeric suffix of an identifier, 0 when absent or unparsable"""
    if not identifier or not identifier.startswith(prefix):
        return 0
    try:
        return int(identifier[len(prefix):])
    except ValueError:
        return 0


async def next_identifier(
    session: AsyncSession,
    model,
    prefix: str,
    width: int = DEFAULT_WIDTH,
) -> str:
    """Read the highest identifier of this kind and increment its suffix"""
    id_column = model.id
    result = await session.execute(
        select(id_column)
        .where(id_column.like(f"{prefix}%"))
        # length first so that T1000 sorts after T999
        .order_by(func.length(id_column).desc(), id_column.desc())
        .limit(1)
    )
    last_id = result.scalar_one_or_none()
    return format_identifier(prefix, parse_suffix(last_id, prefix) + 1, width)


async def _identifier_taken(session: AsyncSession, model, identifier: str) -> bool:
    result = await session.execute(select(model.id).where(model.id == identifier))
    return result.scalar_one_or_none() is not None


async def add_with_identifier(
    session: AsyncSession,
    model,
    prefix: str,
    build: Callable[[str], M],
    width: int = DEFAULT_WIDTH,
    retries: Optional[int] = None,
) -> M:
    """
    Allocate an identifier, build the instance with it and flush it.

    Each attempt runs in its own SAVEPOINT so a duplicate-key failure only
    discards that attempt. Errors other than a key clash (missing table,
    lost connection) propagate unchanged.
    """
    attempts = retries or settings.ID_ALLOCATION_RETRIES
    last_failed: Optional[str] = None

    for attempt in range(1, attempts + 1):
        try:
            async with session.begin_nested():
                identifier = await next_identifier(session, model, prefix, width)
                if last_failed is not None and parse_suffix(identifier, prefix) <= parse_suffix(last_failed, prefix):
                    identifier = format_identifier(prefix, parse_suffix(last_failed, prefix) + 1, width)

                instance = build(identifier)
                session.add(instance)
                await session.flush()
            return instance
        except (IntegrityError, FlushError) as exc:
            if isinstance(exc, IntegrityError) and not await _identifier_taken(session, model, identifier):
                # foreign key / NOT NULL failure, not a key clash
                raise
            logger.warning(
                f"Identifier {identifier} for {model.__tablename__} already taken "
                f"(attempt {attempt}/{attempts}), retrying"
            )
            last_failed = identifier

    raise IdentifierConflict(
        f"Could not allocate a {prefix} identifier for {model.__tablename__} after {attempts} attempts"
    )
