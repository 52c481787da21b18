"""
Scanner controller: piece lookup & status updates for the terminal.

Routes go through the configured scanner variant; in manual mode they
additionally require a signed-in operator (see `get_scanner`).
"""

from fastapi import APIRouter, Depends, HTTPException, status

from glasstrace.rbac.dependencies import get_scanner, get_terminal
from glasstrace.schemas import (
    PieceDetail,
    PieceOut,
    StationStateOut,
    StatusOption,
    StatusUpdateRequest,
    WorkStationOut,
)
from glasstrace.station.credential_manager import OperationResult, StationErrorKind
from glasstrace.station.scanning import PieceStatusUpdater, available_statuses
from glasstrace.terminal import Terminal

router = APIRouter(prefix="/api/scanner", tags=["Scanner"])

_STATUS_CODES = {
    StationErrorKind.INVALID_CREDENTIALS: status.HTTP_401_UNAUTHORIZED,
    StationErrorKind.NOT_AUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    StationErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    StationErrorKind.OPERATION_FAILED: status.HTTP_400_BAD_REQUEST,
}


def _unwrap(result: OperationResult):
    if result.success:
        return result.data
    code = _STATUS_CODES.get(result.error_kind, status.HTTP_503_SERVICE_UNAVAILABLE)
    raise HTTPException(status_code=code, detail=result.error)


@router.get("/statuses", response_model=list[StatusOption])
async def statuses():
    return available_statuses()


@router.get("/stations", response_model=list[WorkStationOut])
async def stations(scanner: PieceStatusUpdater = Depends(get_scanner)):
    return _unwrap(await scanner.get_work_stations())


@router.get("/pieces/{barcode}", response_model=PieceDetail)
async def piece_info(barcode: str, scanner: PieceStatusUpdater = Depends(get_scanner)):
    return _unwrap(await scanner.get_piece_info(barcode))


@router.post("/pieces/{barcode}/status", response_model=PieceOut)
async def update_status(
    barcode: str,
    body: StatusUpdateRequest,
    scanner: PieceStatusUpdater = Depends(get_scanner),
):
    """Single atomic status change + audit entry.  Never retried here."""
    return _unwrap(await scanner.update_piece_status(barcode, body.status, body.notes))


@router.get("/station", response_model=StationStateOut)
async def station_state(terminal: Terminal = Depends(get_terminal)):
    manager = terminal.station_manager
    if manager is None:
        return StationStateOut(mode=terminal.mode.value, is_authenticated=False, loading=False)
    return StationStateOut(
        mode=terminal.mode.value,
        is_authenticated=manager.is_authenticated,
        loading=manager.state.loading,
        error=manager.state.error,
        session=manager.session_info,
    )
