"""Command and board read-model routes."""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from board_sync.api.dependencies import get_board_session
from board_sync.core import BatchErrorPolicy, BoardSession
from board_sync.exceptions import (
    BoardSyncError,
    DispatcherNotReadyError,
    NotFoundError,
    TransientIOError,
    UnknownCommandError,
    ValidationError,
)
from board_sync.models import Case, Command, Department

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["commands"])


class BatchRequest(BaseModel):
    commands: List[Command]
    continue_on_error: bool = False


class CommandResponse(BaseModel):
    name: str
    result: Any = None


class BatchResponse(BaseModel):
    results: List[Dict[str, Any]]
    error: Optional[str] = None
    failed_command: Optional[str] = None


def to_http_error(error: BoardSyncError) -> HTTPException:
    """Map the error taxonomy onto HTTP status codes."""
    if isinstance(error, (UnknownCommandError, NotFoundError)):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, ValidationError):
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(error, (TransientIOError, DispatcherNotReadyError)):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=str(error))


@router.post(
    "/commands",
    response_model=CommandResponse,
    summary="Dispatch one command",
    responses={
        404: {"description": "Unknown command or case not found"},
        422: {"description": "Malformed payload"},
        503: {"description": "Persistence failure, safe to retry"},
    },
)
async def dispatch_command(
    command: Command,
    session: BoardSession = Depends(get_board_session),
) -> CommandResponse:
    """Dispatch a single command through the session's dispatcher."""
    try:
        result = await session.dispatch(command)
    except BoardSyncError as e:
        raise to_http_error(e)
    return CommandResponse(name=command.name, result=jsonable_encoder(result))


@router.post(
    "/commands/batch",
    response_model=BatchResponse,
    summary="Dispatch commands in order",
)
async def dispatch_batch(
    request: BatchRequest,
    session: BoardSession = Depends(get_board_session),
) -> BatchResponse:
    """Run commands sequentially; by default the first failure stops the batch."""
    policy = BatchErrorPolicy.CONTINUE if request.continue_on_error else BatchErrorPolicy.ABORT
    batch = await session.dispatch_batch(request.commands, on_error=policy)
    return BatchResponse(
        results=[
            {
                "name": r.command.name,
                "success": r.success,
                "result": jsonable_encoder(r.value),
                "error": r.error,
            }
            for r in batch.results
        ],
        error=str(batch.error) if batch.error else None,
        failed_command=batch.failed_command.name if batch.failed_command else None,
    )


@router.get(
    "/board/cases",
    response_model=List[Case],
    summary="Cached board cases",
)
async def list_board_cases(
    department: Optional[str] = Query(None, description="Stored department or 'Digital'"),
    session: BoardSession = Depends(get_board_session),
) -> List[Case]:
    """Return the session's cached, non-archived cases."""
    dept = None
    if department:
        try:
            dept = Department.parse(department)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"Unknown department: {department}",
            )
    return session.cache.by_department(dept)
