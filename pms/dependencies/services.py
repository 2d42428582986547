from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from pms.dependencies.auth import User, role_required
from pms.notifications.service import NotificationService
from pms.tickets.service import TicketService
from pms.tickets.state import Role

require_admin = role_required(Role.ADMIN)
require_creator = role_required(Role.ADMIN, Role.END_USER)

AdminUser = Annotated[User, Depends(require_admin)]
CreatorUser = Annotated[User, Depends(require_creator)]


async def get_ticket_service(request: Request) -> TicketService:
    service = getattr(request.app.state, "ticket_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Ticket service is not configured")
    return service


async def get_notification_service(request: Request) -> NotificationService:
    service = getattr(request.app.state, "notification_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Notification service is not configured")
    return service


TicketServiceDep = Annotated[TicketService, Depends(get_ticket_service)]
NotificationServiceDep = Annotated[NotificationService, Depends(get_notification_service)]
