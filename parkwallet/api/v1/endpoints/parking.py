"""Parking endpoints."""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import ValidationError

from parkwallet.api.deps import Identity, get_coordinator, get_identity, require_admin
from parkwallet.errors import InvalidArgument
from parkwallet.schemas.common import Envelope, ErrorResponse
from parkwallet.schemas.parking_session import (
    CheckoutResult,
    GateRequest,
    HistoryFilter,
    HistoryPage,
    ParkingSessionResponse,
)
from parkwallet.services.parking import ParkingCoordinator

router = APIRouter()


@router.post(
    "/checkin",
    response_model=Envelope[ParkingSessionResponse],
    status_code=status.HTTP_201_CREATED,
)
async def check_in(
    request: GateRequest,
    coordinator: ParkingCoordinator = Depends(get_coordinator),
):
    """Open a parking session for a vehicle at the entry gate."""
    parking = await coordinator.check_in(request.credential, request.vehicle_tag)
    return Envelope(data=parking, message="Successfully checked in")


@router.post(
    "/checkout",
    response_model=Envelope[CheckoutResult],
    responses={402: {"model": ErrorResponse}},
)
async def check_out_and_pay(
    request: GateRequest,
    coordinator: ParkingCoordinator = Depends(get_coordinator),
):
    """Close the vehicle's session and pay for it from the owner's wallet."""
    result = await coordinator.check_out_and_pay(request.credential, request.vehicle_tag)
    return Envelope(data=result, message=result.message)


@router.get("/active", response_model=Envelope[ParkingSessionResponse])
async def get_active_parking(
    identity: Identity = Depends(get_identity),
    coordinator: ParkingCoordinator = Depends(get_coordinator),
):
    """Get the caller's active parking session."""
    parking = await coordinator.get_active_for_subject(identity.subject_id)
    return Envelope(data=parking)


@router.get("/active/{vehicle_tag}", response_model=Envelope[ParkingSessionResponse])
async def get_active_parking_for_vehicle(
    vehicle_tag: str,
    identity: Identity = Depends(get_identity),
    coordinator: ParkingCoordinator = Depends(get_coordinator),
):
    """Get the active parking session of a vehicle."""
    parking = await coordinator.get_active_for_vehicle(vehicle_tag)
    return Envelope(data=parking)


@router.get("/history", response_model=Envelope[List[ParkingSessionResponse]])
async def get_parking_history(
    identity: Identity = Depends(get_identity),
    coordinator: ParkingCoordinator = Depends(get_coordinator),
):
    """List the caller's parking sessions, newest first."""
    history = await coordinator.get_history_for_subject(identity.subject_id)
    return Envelope(data=history)


@router.get("/admin/active", response_model=Envelope[List[ParkingSessionResponse]])
async def list_all_active_parking(
    admin: Identity = Depends(require_admin),
    coordinator: ParkingCoordinator = Depends(get_coordinator),
):
    """List every active parking session."""
    return Envelope(data=await coordinator.list_active())


@router.get("/admin/history", response_model=Envelope[HistoryPage])
async def list_all_history(
    start_date: Optional[datetime] = Query(None, description="Sessions entered at or after"),
    end_date: Optional[datetime] = Query(None, description="Sessions entered at or before"),
    status_filter: str = Query("all", alias="status", description="paid, pending, unpaid, cancelled or all"),
    page: int = Query(1, description="Page number, starting at 1"),
    limit: int = Query(100, description="Records per page"),
    sort_by: str = Query("entered_at", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    admin: Identity = Depends(require_admin),
    coordinator: ParkingCoordinator = Depends(get_coordinator),
):
    """List parking history across all users with filters and paging."""
    try:
        filters = HistoryFilter(
            start_date=start_date,
            end_date=end_date,
            status=status_filter,
            page=page,
            limit=limit,
            sort_by=sort_by,
            sort_order=sort_order,
        )
    except ValidationError as e:
        raise InvalidArgument(
            "Invalid history filter",
            data={
                "errors": e.errors(
                    include_url=False, include_context=False, include_input=False
                )
            },
        ) from e

    return Envelope(data=await coordinator.list_history(filters))


@router.get("/admin/unreconciled", response_model=Envelope[List[ParkingSessionResponse]])
async def list_unreconciled_sessions(
    admin: Identity = Depends(require_admin),
    coordinator: ParkingCoordinator = Depends(get_coordinator),
):
    """List sessions whose wallet was debited but which are not marked paid."""
    return Envelope(data=await coordinator.list_unreconciled())


@router.post("/admin/{session_id}/cancel", response_model=Envelope[ParkingSessionResponse])
async def cancel_parking_session(
    session_id: str,
    admin: Identity = Depends(require_admin),
    coordinator: ParkingCoordinator = Depends(get_coordinator),
):
    """Cancel a checked-out session that was never paid."""
    parking = await coordinator.cancel_unpaid(session_id)
    return Envelope(data=parking, message="Parking session cancelled")
