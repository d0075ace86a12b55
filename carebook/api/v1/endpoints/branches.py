"""Branch timing endpoints."""

from fastapi import APIRouter, status

from carebook.dependencies import DatabaseSession, Resolver, StaffRequester
from carebook.schemas.schedules import BranchTimingsUpdate

router = APIRouter()


@router.put(
    "/{branch_id}/timings",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Replace branch opening hours",
)
async def update_branch_timings(
    branch_id: str,
    data: BranchTimingsUpdate,
    db: DatabaseSession,
    resolver: Resolver,
    requester: StaffRequester,
) -> None:
    """
    Replace a branch's opening hours.

    Doctors without a branch-specific schedule follow these hours when
    booked at the branch.
    """
    await resolver.set_branch_timings(
        db,
        branch_id,
        data.timings,
        hospital_id=requester.hospital_id,
    )
