"""Week endpoints - week grid view, upsert and submit."""
from fastapi import APIRouter, Depends, HTTPException, status

from app.database import get_database
from app.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.user import CurrentUser
from app.models.week import WeekSubmit, WeekUpsert, WeekView
from app.routers.auth import get_current_user
from app.services.week_service import WeekService


router = APIRouter(prefix="/timesheet/weeks", tags=["timesheet weeks"])


@router.get("/{week_start}/timesheet", response_model=WeekView)
async def get_week_timesheet(
    week_start: str,
    current_user: CurrentUser = Depends(get_current_user),
    db=Depends(get_database),
):
    """
    Get the current user's week.

    - Requires authentication
    - Creates the timesheet on first access
    - Legacy entries are grouped into rows on first access
    """
    service = WeekService(db)
    try:
        return await service.get_week(
            company_id=current_user.company_id,
            user_id=current_user.user_id,
            week_start=week_start,
        )
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.put("/{week_start}/timesheet", response_model=WeekView)
async def upsert_week_timesheet(
    week_start: str,
    week_upsert: WeekUpsert,
    current_user: CurrentUser = Depends(get_current_user),
    db=Depends(get_database),
):
    """
    Save the rows of the current user's week.

    - Requires authentication
    - Rows missing from the body are deleted unless locked
    - Locked rows cannot be changed
    - Nothing is saved if any row is invalid
    """
    service = WeekService(db)
    try:
        return await service.upsert_week(
            company_id=current_user.company_id,
            user_id=current_user.user_id,
            week_start=week_start,
            week_upsert=week_upsert,
            actor_id=current_user.user_id,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except ConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.post("/{week_start}/submit", response_model=WeekView)
async def submit_week_timesheet(
    week_start: str,
    week_submit: WeekSubmit | None = None,
    current_user: CurrentUser = Depends(get_current_user),
    db=Depends(get_database),
):
    """
    Submit the open rows of the current user's week.

    - Requires authentication
    - Approved and locked rows are skipped
    """
    service = WeekService(db)
    try:
        return await service.submit_week(
            company_id=current_user.company_id,
            user_id=current_user.user_id,
            week_start=week_start,
            week_submit=week_submit,
            actor_id=current_user.user_id,
        )
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except ConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
