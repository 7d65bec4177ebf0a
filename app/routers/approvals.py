"""Timesheet approval endpoints - per-approver approval records."""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from app.database import get_database
from app.exceptions import NotFoundError, ValidationError
from app.models.approval import (
    TimesheetApproval,
    TimesheetApprovalCreate,
    TimesheetApprovalUpdate,
)
from app.models.user import CurrentUser
from app.routers.auth import get_current_user
from app.services.approval_service import ApprovalService


router = APIRouter(prefix="/timesheet-approvals", tags=["timesheet approvals"])


@router.post("", response_model=TimesheetApproval, status_code=status.HTTP_201_CREATED)
async def create_approval(
    approval_create: TimesheetApprovalCreate,
    current_user: CurrentUser = Depends(get_current_user),
    db=Depends(get_database),
):
    """
    Assign an approver to a timesheet.

    - Requires authentication
    - One approval per timesheet and approver
    """
    service = ApprovalService(db)
    try:
        return await service.create_approval(current_user.company_id, approval_create)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("", response_model=list[TimesheetApproval])
async def list_approvals(
    timesheet_id: Optional[str] = None,
    approver_id: Optional[str] = None,
    current_user: CurrentUser = Depends(get_current_user),
    db=Depends(get_database),
):
    """
    List approvals of a timesheet or of an approver.

    - Requires authentication
    - Filter by timesheet_id, else by approver_id
    - Without filters, lists the current user's approvals
    """
    service = ApprovalService(db)
    try:
        if timesheet_id:
            return await service.list_for_timesheet(current_user.company_id, timesheet_id)
        return await service.list_for_approver(
            current_user.company_id, approver_id or current_user.user_id
        )
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("/{approval_id}", response_model=TimesheetApproval)
async def get_approval(
    approval_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db=Depends(get_database),
):
    """
    Get an approval.

    - Requires authentication
    """
    service = ApprovalService(db)
    try:
        return await service.get_approval(current_user.company_id, approval_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.put("/{approval_id}", response_model=TimesheetApproval)
async def update_approval(
    approval_id: str,
    approval_update: TimesheetApprovalUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    db=Depends(get_database),
):
    """
    Record an approver's decision.

    - Requires authentication
    - A rejection needs a reason
    """
    service = ApprovalService(db)
    try:
        return await service.update_approval(
            current_user.company_id, approval_id, approval_update
        )
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.delete("/{approval_id}")
async def delete_approval(
    approval_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db=Depends(get_database),
):
    """
    Delete an approval.

    - Requires authentication
    - Hard delete (permanent)
    """
    service = ApprovalService(db)
    try:
        return await service.delete_approval(current_user.company_id, approval_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
