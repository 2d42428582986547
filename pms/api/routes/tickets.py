from __future__ import annotations

from datetime import datetime
from typing import NoReturn

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field

from pms.dependencies.auth import CurrentUser
from pms.dependencies.services import AdminUser, CreatorUser, TicketServiceDep
from pms.tickets.errors import (
    InvalidTicketTransitionError,
    TicketAccessDeniedError,
    TicketConflictError,
    TicketNotFoundError,
    TicketServiceError,
    TicketValidationError,
)
from pms.tickets.models import HistoryEntry, Ticket, TicketAction, TicketMessage
from pms.tickets.state import TicketPriority, TicketStatus, TicketType

router = APIRouter(prefix="/tickets", tags=["tickets"])


class TicketCreateRequest(BaseModel):
    project_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(default="")
    type: str = Field(default=TicketType.BUG.value)
    priority: str = Field(default=TicketPriority.MEDIUM.value)


class TicketAssignRequest(BaseModel):
    developer_id: str = Field(..., min_length=1)


class TicketStatusChangeRequest(BaseModel):
    status: str
    comment: str | None = Field(default=None, max_length=2000)


class TicketCloseRequest(BaseModel):
    comment: str | None = Field(default=None, max_length=2000)
    satisfaction_score: int | None = None
    satisfaction_comment: str | None = Field(default=None, max_length=2000)


class TicketReopenRequest(BaseModel):
    comment: str = ""


class TicketMessageRequest(BaseModel):
    content: str


class TicketAttachmentRequest(BaseModel):
    file_names: list[str] = Field(default_factory=list)


class TicketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    project_id: str
    title: str
    description: str
    type: TicketType
    priority: TicketPriority
    status: TicketStatus
    created_by: str
    assigned_to: str | None = None
    created_at: datetime
    updated_at: datetime
    assigned_at: datetime | None = None
    in_progress_at: datetime | None = None
    resolved_at: datetime | None = None
    reopened_at: datetime | None = None
    closed_at: datetime | None = None
    reopen_count: int = 0
    satisfaction_score: int | None = None
    satisfaction_comment: str | None = None
    rated_at: datetime | None = None
    is_archived: bool = False
    archived_at: datetime | None = None
    archived_by: str | None = None
    version: int


class HistoryEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    action: TicketAction
    old_value: str | None = None
    new_value: str | None = None
    comment: str | None = None
    actor_id: str
    created_at: datetime


class TicketMessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    author_id: str
    content: str
    created_at: datetime


def _to_response(ticket: Ticket) -> TicketResponse:
    return TicketResponse.model_validate(ticket)


def _to_history_response(entry: HistoryEntry) -> HistoryEntryResponse:
    return HistoryEntryResponse.model_validate(entry)


def _to_message_response(message: TicketMessage) -> TicketMessageResponse:
    return TicketMessageResponse.model_validate(message)


_ERROR_STATUS: tuple[tuple[type[TicketServiceError], int], ...] = (
    (TicketNotFoundError, status.HTTP_404_NOT_FOUND),
    (TicketAccessDeniedError, status.HTTP_403_FORBIDDEN),
    (InvalidTicketTransitionError, status.HTTP_400_BAD_REQUEST),
    (TicketValidationError, status.HTTP_400_BAD_REQUEST),
    (TicketConflictError, status.HTTP_409_CONFLICT),
)


def raise_http_error(exc: TicketServiceError) -> NoReturn:
    """Translate a ticket service error into the matching HTTP error."""

    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            raise HTTPException(status_code=status_code, detail=str(exc)) from exc
    raise exc


@router.get("", response_model=list[TicketResponse])
async def list_tickets(
    service: TicketServiceDep,
    user: CurrentUser,
    include_archived: bool = Query(default=False),
) -> list[TicketResponse]:
    tickets = await service.list_tickets(user.actor, include_archived=include_archived)
    return [_to_response(ticket) for ticket in tickets]


@router.post("", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
async def create_ticket(
    payload: TicketCreateRequest,
    service: TicketServiceDep,
    user: CreatorUser,
) -> TicketResponse:
    try:
        ticket = await service.create_ticket(
            user.actor,
            project_id=payload.project_id,
            title=payload.title,
            description=payload.description,
            type=payload.type,
            priority=payload.priority,
        )
    except TicketServiceError as exc:
        raise_http_error(exc)
    return _to_response(ticket)


@router.get("/{ticket_id}", response_model=TicketResponse)
async def get_ticket(ticket_id: str, service: TicketServiceDep, user: CurrentUser) -> TicketResponse:
    try:
        ticket = await service.get_ticket(user.actor, ticket_id)
    except TicketServiceError as exc:
        raise_http_error(exc)
    return _to_response(ticket)


@router.patch("/{ticket_id}/assign", response_model=TicketResponse)
async def assign_ticket(
    ticket_id: str,
    payload: TicketAssignRequest,
    service: TicketServiceDep,
    user: AdminUser,
) -> TicketResponse:
    try:
        ticket = await service.assign(user.actor, ticket_id, payload.developer_id)
    except TicketServiceError as exc:
        raise_http_error(exc)
    return _to_response(ticket)


@router.patch("/{ticket_id}/status", response_model=TicketResponse)
async def change_ticket_status(
    ticket_id: str,
    payload: TicketStatusChangeRequest,
    service: TicketServiceDep,
    user: CurrentUser,
) -> TicketResponse:
    try:
        ticket = await service.change_status(user.actor, ticket_id, payload.status, comment=payload.comment)
    except TicketServiceError as exc:
        raise_http_error(exc)
    return _to_response(ticket)


@router.patch("/{ticket_id}/close", response_model=TicketResponse)
async def close_ticket(
    ticket_id: str,
    payload: TicketCloseRequest,
    service: TicketServiceDep,
    user: CurrentUser,
) -> TicketResponse:
    try:
        ticket = await service.close(
            user.actor,
            ticket_id,
            comment=payload.comment,
            satisfaction_score=payload.satisfaction_score,
            satisfaction_comment=payload.satisfaction_comment,
        )
    except TicketServiceError as exc:
        raise_http_error(exc)
    return _to_response(ticket)


@router.patch("/{ticket_id}/reopen", response_model=TicketResponse)
async def reopen_ticket(
    ticket_id: str,
    payload: TicketReopenRequest,
    service: TicketServiceDep,
    user: CurrentUser,
) -> TicketResponse:
    try:
        ticket = await service.reopen(user.actor, ticket_id, payload.comment)
    except TicketServiceError as exc:
        raise_http_error(exc)
    return _to_response(ticket)


@router.patch("/{ticket_id}/archive", response_model=TicketResponse)
async def archive_ticket(ticket_id: str, service: TicketServiceDep, user: AdminUser) -> TicketResponse:
    try:
        ticket = await service.archive(user.actor, ticket_id)
    except TicketServiceError as exc:
        raise_http_error(exc)
    return _to_response(ticket)


@router.patch("/{ticket_id}/unarchive", response_model=TicketResponse)
async def unarchive_ticket(ticket_id: str, service: TicketServiceDep, user: AdminUser) -> TicketResponse:
    try:
        ticket = await service.unarchive(user.actor, ticket_id)
    except TicketServiceError as exc:
        raise_http_error(exc)
    return _to_response(ticket)


@router.get("/{ticket_id}/history", response_model=list[HistoryEntryResponse])
async def get_ticket_history(
    ticket_id: str, service: TicketServiceDep, user: CurrentUser
) -> list[HistoryEntryResponse]:
    try:
        entries = await service.get_history(user.actor, ticket_id)
    except TicketServiceError as exc:
        raise_http_error(exc)
    return [_to_history_response(entry) for entry in entries]


@router.get("/{ticket_id}/messages", response_model=list[TicketMessageResponse])
async def list_ticket_messages(
    ticket_id: str, service: TicketServiceDep, user: CurrentUser
) -> list[TicketMessageResponse]:
    try:
        messages = await service.list_messages(user.actor, ticket_id)
    except TicketServiceError as exc:
        raise_http_error(exc)
    return [_to_message_response(message) for message in messages]


@router.post(
    "/{ticket_id}/messages",
    response_model=TicketMessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_ticket_message(
    ticket_id: str,
    payload: TicketMessageRequest,
    service: TicketServiceDep,
    user: CurrentUser,
) -> TicketMessageResponse:
    try:
        message = await service.add_message(user.actor, ticket_id, payload.content)
    except TicketServiceError as exc:
        raise_http_error(exc)
    return _to_message_response(message)


@router.post(
    "/{ticket_id}/attachments",
    response_model=HistoryEntryResponse,
    status_code=status.HTTP_201_CREATED,
)
async def record_ticket_attachments(
    ticket_id: str,
    payload: TicketAttachmentRequest,
    service: TicketServiceDep,
    user: CurrentUser,
) -> HistoryEntryResponse:
    try:
        entry = await service.record_attachments(user.actor, ticket_id, payload.file_names)
    except TicketServiceError as exc:
        raise_http_error(exc)
    return _to_history_response(entry)
