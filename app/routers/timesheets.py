"""Timesheet endpoints - workflow transitions and history."""
from fastapi import APIRouter, Depends, HTTPException, status

from app.database import get_database
from app.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.history import HistoryEvent
from app.models.timesheet import Timesheet, TimesheetEntry, TimesheetReject
from app.models.user import CurrentUser
from app.routers.auth import get_current_user
from app.services.entry_service import EntryService
from app.services.timesheet_service import TimesheetService


router = APIRouter(prefix="/timesheets", tags=["timesheets"])


def _http_error(e: ValueError) -> HTTPException:
    """Map a service error to an HTTP error."""
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, ConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/{timesheet_id}", response_model=Timesheet)
async def get_timesheet(
    timesheet_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db=Depends(get_database),
):
    """
    Get a timesheet of the current user's company.

    - Requires authentication
    """
    service = TimesheetService(db)
    try:
        return await service.get_timesheet(current_user.company_id, timesheet_id)
    except NotFoundError as e:
        raise _http_error(e)


@router.post("/{timesheet_id}/submit", response_model=Timesheet)
async def submit_timesheet(
    timesheet_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db=Depends(get_database),
):
    """
    Submit a draft timesheet.

    - Requires authentication
    - Timesheet must be in DRAFT status
    """
    service = TimesheetService(db)
    try:
        return await service.submit_timesheet(
            current_user.company_id, timesheet_id, actor_id=current_user.user_id
        )
    except (NotFoundError, ValidationError, ConflictError) as e:
        raise _http_error(e)


@router.post("/{timesheet_id}/approve", response_model=Timesheet)
async def approve_timesheet(
    timesheet_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db=Depends(get_database),
):
    """
    Approve a submitted timesheet.

    - Requires authentication
    - Timesheet must be in SUBMITTED status
    """
    service = TimesheetService(db)
    try:
        return await service.approve_timesheet(
            current_user.company_id, timesheet_id, approver_id=current_user.user_id
        )
    except (NotFoundError, ValidationError, ConflictError) as e:
        raise _http_error(e)


@router.post("/{timesheet_id}/reject", response_model=Timesheet)
async def reject_timesheet(
    timesheet_id: str,
    timesheet_reject: TimesheetReject,
    current_user: CurrentUser = Depends(get_current_user),
    db=Depends(get_database),
):
    """
    Reject a submitted timesheet with a reason.

    - Requires authentication
    - Timesheet must be in SUBMITTED status
    - Rows that are not approved are reopened for editing
    """
    service = TimesheetService(db)
    try:
        return await service.reject_timesheet(
            current_user.company_id,
            timesheet_id,
            approver_id=current_user.user_id,
            reason=timesheet_reject.reason,
        )
    except (NotFoundError, ValidationError, ConflictError) as e:
        raise _http_error(e)


@router.get("/{timesheet_id}/history", response_model=list[HistoryEvent])
async def list_timesheet_history(
    timesheet_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db=Depends(get_database),
):
    """
    List the history of a timesheet, most recent first.

    - Requires authentication
    """
    service = TimesheetService(db)
    try:
        return await service.list_history(current_user.company_id, timesheet_id)
    except NotFoundError as e:
        raise _http_error(e)


@router.get("/{timesheet_id}/entries", response_model=list[TimesheetEntry])
async def list_timesheet_entries(
    timesheet_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db=Depends(get_database),
):
    """
    List every entry of a timesheet ordered by day.

    - Requires authentication
    """
    service = EntryService(db)
    try:
        return await service.list_entries(current_user.company_id, timesheet_id)
    except NotFoundError as e:
        raise _http_error(e)
