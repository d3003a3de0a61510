"""Notification service — inbox rows for leave events.

Leave transitions notify only after their own unit of work has committed
(``send_after_commit``); a notification that cannot be written is logged and
dropped, never undoing the transition it describes.
"""

from __future__ import annotations

import logging
import uuid
from typing import Awaitable, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hrops.common.constants import DATE_FORMAT, NotificationType
from hrops.notifications.models import Notification

logger = logging.getLogger(__name__)


class NotificationService:
    """Async notification operations."""

    @staticmethod
    async def notify(
        db: AsyncSession,
        leave_request,  # hrops.leave.models.LeaveRequest
        *,
        recipient_id: uuid.UUID,
        type: NotificationType,
        title: str,
        message: str,
    ) -> Notification:
        """Add one inbox row about ``leave_request`` and flush it."""
        notification = Notification(
            recipient_id=recipient_id,
            leave_request_id=leave_request.id,
            type=type,
            title=title,
            message=message,
            action_url=f"/leave/requests/{leave_request.id}",
        )
        db.add(notification)
        await db.flush()
        return notification


async def send_after_commit(
    db: AsyncSession,
    notify: Callable[[AsyncSession], Awaitable[object]],
) -> None:
    """Write and commit notifications in their own transaction (fire-and-forget)."""
    try:
        await notify(db)
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.warning("Dropped leave notification", exc_info=True)


# ── Leave event helpers ─────────────────────────────────────────────


def _period(leave_request) -> str:
    return (
        f"{leave_request.start_date.strftime(DATE_FORMAT)} to "
        f"{leave_request.end_date.strftime(DATE_FORMAT)}"
    )


async def notify_leave_request(
    db: AsyncSession,
    leave_request,
    reviewer_id: uuid.UUID,
) -> Notification:
    """Tell the group admin a new request is waiting on them."""
    return await NotificationService.notify(
        db, leave_request,
        recipient_id=reviewer_id,
        type=NotificationType.action_required,
        title="New Leave Request",
        message=(
            f"A leave request for {_period(leave_request)} "
            f"({leave_request.days_requested} working day(s)) requires your approval."
        ),
    )


async def notify_leave_approved(db: AsyncSession, leave_request) -> Notification:
    return await NotificationService.notify(
        db, leave_request,
        recipient_id=leave_request.employee_id,
        type=NotificationType.approval,
        title="Leave Request Approved",
        message=f"Your leave request for {_period(leave_request)} has been approved.",
    )


async def notify_leave_rejected(db: AsyncSession, leave_request) -> Notification:
    return await NotificationService.notify(
        db, leave_request,
        recipient_id=leave_request.employee_id,
        type=NotificationType.alert,
        title="Leave Request Rejected",
        message=(
            f"Your leave request for {_period(leave_request)} was rejected. "
            f"Reason: {leave_request.rejection_reason}"
        ),
    )


async def notify_leave_escalated(
    db: AsyncSession,
    leave_request,
    escalated_to: uuid.UUID,
) -> None:
    """Notify the management reviewer and the employee of an escalation."""
    await NotificationService.notify(
        db, leave_request,
        recipient_id=escalated_to,
        type=NotificationType.action_required,
        title="Leave Request Escalated",
        message=(
            f"A leave request for {_period(leave_request)} has been escalated "
            f"to you for a decision."
        ),
    )
    await NotificationService.notify(
        db, leave_request,
        recipient_id=leave_request.employee_id,
        type=NotificationType.info,
        title="Leave Request Escalated",
        message=f"Your leave request for {_period(leave_request)} is now with management.",
    )
