"""Timesheet entry endpoints - single-entry edits and status changes."""
from fastapi import APIRouter, Depends, HTTPException, Response, status

from app.database import get_database
from app.exceptions import NotFoundError, ValidationError
from app.models.timesheet import EntryUpdate, TimesheetEntry, TimesheetEntryCreate
from app.models.user import CurrentUser
from app.routers.auth import get_current_user
from app.services.entry_service import EntryService


router = APIRouter(prefix="/timesheet/entries", tags=["timesheet entries"])


@router.post("", response_model=TimesheetEntry, status_code=status.HTTP_201_CREATED)
async def create_entry(
    entry_create: TimesheetEntryCreate,
    current_user: CurrentUser = Depends(get_current_user),
    db=Depends(get_database),
):
    """
    Add a day to an existing row.

    - Requires authentication
    - The row must not be locked
    - The day must be inside the timesheet period and free on the row
    """
    service = EntryService(db)
    try:
        return await service.create_entry(
            current_user.company_id, entry_create, actor_id=current_user.user_id
        )
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/{entry_id}", response_model=TimesheetEntry)
async def get_entry(
    entry_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db=Depends(get_database),
):
    """
    Get a timesheet entry.

    - Requires authentication
    """
    service = EntryService(db)
    try:
        return await service.get_entry(current_user.company_id, entry_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.patch("/{entry_id}", response_model=TimesheetEntry)
async def update_entry(
    entry_id: str,
    entry_update: EntryUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    db=Depends(get_database),
):
    """
    Edit a timesheet entry or change its status.

    - Requires authentication
    - Approved and invoiced entries only accept status changes
    - Status changes must follow the entry workflow
    - A duration of 0 deletes the entry (204)
    """
    service = EntryService(db)
    try:
        entry = await service.update_entry(
            current_user.company_id,
            entry_id,
            entry_update,
            actor_id=current_user.user_id,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if entry is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return entry


@router.delete("/{entry_id}")
async def delete_entry(
    entry_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db=Depends(get_database),
):
    """
    Delete a timesheet entry.

    - Requires authentication
    - Approved and invoiced entries cannot be deleted
    - Hard delete (permanent)
    """
    service = EntryService(db)
    try:
        return await service.delete_entry(
            current_user.company_id, entry_id, actor_id=current_user.user_id
        )
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
