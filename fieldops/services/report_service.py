"""
Report persistence, validation state and photo batches
"""
from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from fieldops.models.enums import ValidationStatus
from fieldops.models.report import Report, ReportPhoto
from fieldops.models.task import Phase
from fieldops.services.errors import InvalidTransition, ValidationError
from fieldops.services.identifiers import add_with_identifier, REPORT_PREFIX
from fieldops.services.photo_storage import photo_storage
from fieldops.utils.logger import get_logger

logger = get_logger(__name__)


def check_advancement(advancement: int) -> int:
    if advancement is None or not 0 <= advancement <= 100:
        raise ValidationError(f"advancement must be between 0 and 100, got {advancement}")
    return advancement


def _report_query():
    return select(Report).options(
        selectinload(Report.photos),
        selectinload(Report.phase),
    )


async def get_report(session: AsyncSession, report_id: str) -> Optional[Report]:
    result = await session.execute(
        _report_query()
        .where(Report.id == report_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_reports(
    session: AsyncSession,
    task_id: Optional[str] = None,
    phase_id: Optional[str] = None,
    validation: Optional[ValidationStatus] = None,
) -> List[Report]:
    query = _report_query().order_by(
        Report.report_date.desc(), func.length(Report.id).desc(), Report.id.desc()
    )
    if task_id:
        query = query.join(Phase, Report.phase_id == Phase.id).where(Phase.task_id == task_id)
    if phase_id:
        query = query.where(Report.phase_id == phase_id)
    if validation is not None:
        query = query.where(Report.validation == validation)
    result = await session.execute(query)
    return list(result.scalars().all())


async def create_report(
    session: AsyncSession,
    phase_id: str,
    description: str,
    advancement: int,
    report_date: Optional[date] = None,
    photos: Optional[List[str]] = None,
) -> Optional[Report]:
    """New pending report against an existing phase; None when the phase is unknown"""
    check_advancement(advancement)
    if not description or not description.strip():
        raise ValidationError("Report description is required")

    if await session.get(Phase, phase_id) is None:
        return None

    report = await add_with_identifier(
        session,
        Report,
        REPORT_PREFIX,
        lambda identifier: Report(
            id=identifier,
            phase_id=phase_id,
            description=description,
            report_date=report_date or date.today(),
            advancement=advancement,
            validation=ValidationStatus.PENDING,
        ),
    )
    if photos:
        await replace_photo_rows(session, report.id, photos)
    logger.info(f"Report {report.id} submitted on phase {phase_id} ({advancement}%)")
    return report


async def update_report(
    session: AsyncSession,
    report_id: str,
    description: Optional[str] = None,
    advancement: Optional[int] = None,
    report_date: Optional[date] = None,
    photos: Optional[List[str]] = None,
) -> bool:
    if advancement is not None:
        check_advancement(advancement)

    report = await session.get(Report, report_id)
    if report is None:
        return False

    if description is not None:
        if not description.strip():
            raise ValidationError("Report description is required")
        report.description = description
    if advancement is not None:
        report.advancement = advancement
    if report_date is not None:
        report.report_date = report_date
    if photos is not None:
        await replace_photo_rows(session, report_id, photos)

    await session.flush()
    return True


async def judge_report(
    session: AsyncSession,
    report_id: str,
    validation: Optional[ValidationStatus],
    comment: Optional[str],
) -> bool:
    """
    Apply the supervisor's decision.

    pending -> needs_revision | approved. Both outcomes are terminal:
    re-applying the current state is accepted, anything else raises
    InvalidTransition. validation=None only stores the comment.
    """
    report = await session.get(Report, report_id)
    if report is None:
        return False

    if validation is not None and validation != report.validation:
        if report.validation != ValidationStatus.PENDING:
            raise InvalidTransition(
                f"Report {report_id} is already {report.validation.label!r}, "
                f"cannot change it to {validation.label!r}"
            )
        report.validation = validation

    report.comment = comment
    await session.flush()
    logger.info(f"Report {report_id} judged: {report.validation.value}")
    return True


async def delete_report(session: AsyncSession, report_id: str) -> bool:
    report = await get_report(session, report_id)
    if report is None:
        return False
    await session.delete(report)
    await session.flush()
    photo_storage.delete_report(report_id)
    return True


# --- Photos ---

async def _clear_photos(session: AsyncSession, report_id: str, keep_files: Optional[set] = None) -> None:
    """Drop every photo row of a report and the stored files not listed in keep_files"""
    result = await session.execute(select(ReportPhoto).where(ReportPhoto.report_id == report_id))
    for photo in result.scalars().all():
        if not keep_files or photo.filename not in keep_files:
            photo_storage.delete_file(report_id, photo.filename)

    await session.execute(delete(ReportPhoto).where(ReportPhoto.report_id == report_id))
    await session.flush()


async def _add_photo_rows(session: AsyncSession, report_id: str, filenames: List[str]) -> List[ReportPhoto]:
    rows = [
        ReportPhoto(report_id=report_id, filename=filename, position=position)
        for position, filename in enumerate(filenames)
    ]
    session.add_all(rows)
    await session.flush()
    return rows


async def replace_photo_rows(session: AsyncSession, report_id: str, filenames: List[str]) -> List[ReportPhoto]:
    """Replace-all with already stored filenames; files named again are kept on disk"""
    await _clear_photos(session, report_id, keep_files=set(filenames))
    return await _add_photo_rows(session, report_id, filenames)


async def store_photos(
    session: AsyncSession, report_id: str, files: List[Tuple[str, bytes]]
) -> Optional[List[ReportPhoto]]:
    """Upload a new batch; the previous batch (rows and files) is deleted first"""
    if await session.get(Report, report_id) is None:
        return None

    photo_storage.check_batch(files)
    await _clear_photos(session, report_id)
    stored = photo_storage.save_batch(report_id, files)
    rows = await _add_photo_rows(session, report_id, [s.filename for s in stored])
    logger.info(f"Stored {len(rows)} photo(s) for report {report_id}")
    return rows


async def get_photo(session: AsyncSession, report_id: str, photo_id: int) -> Optional[ReportPhoto]:
    result = await session.execute(
        select(ReportPhoto).where(ReportPhoto.id == photo_id, ReportPhoto.report_id == report_id)
    )
    return result.scalar_one_or_none()
