import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, WebSocket, WebSocketDisconnect

from fitquest.websocket import ConnectionManager
from .metrics import reminders_acknowledged_total, reminders_created_total
from .notifications import PendingNotificationQueue
from .schemas import (
    PendingNotificationList,
    ReminderCreate,
    ReminderRead,
    ReminderUpdate,
    ResyncResult,
    Reminder,
)
from .service import ReminderService

logger = logging.getLogger(__name__)

router = APIRouter()
notifications_router = APIRouter()
ws_router = APIRouter()


def get_reminder_service(request: Request) -> ReminderService:
    return request.app.state.reminder_service


def get_notification_queue(request: Request) -> PendingNotificationQueue:
    return request.app.state.notification_queue


def _read(service: ReminderService, reminder: Reminder) -> ReminderRead:
    return ReminderRead(**reminder.model_dump(), scheduled=service.is_scheduled(reminder.id))


@router.post("", response_model=ReminderRead, status_code=201)
async def create_reminder_endpoint(
    payload: ReminderCreate,
    service: ReminderService = Depends(get_reminder_service),
):
    reminder = await service.store.create_reminder(payload)
    reminders_created_total.inc()
    if reminder.is_active:
        service.start_reminder(reminder)
    return _read(service, reminder)


@router.post("/resync", response_model=ResyncResult)
async def resync_reminders_endpoint(service: ReminderService = Depends(get_reminder_service)):
    """Rebuild the schedule from the store."""
    started = await service.restart_all()
    return ResyncResult(started=started, active_sessions=sorted(service.scheduler.list_active()))


@router.get("/{user_id}", response_model=List[ReminderRead])
async def list_reminders_endpoint(user_id: str, service: ReminderService = Depends(get_reminder_service)):
    reminders = await service.store.list_reminders(user_id)
    return [_read(service, r) for r in reminders]


@router.patch("/{reminder_id}", response_model=ReminderRead)
async def update_reminder_endpoint(
    reminder_id: int,
    payload: ReminderUpdate,
    service: ReminderService = Depends(get_reminder_service),
):
    """Change the interval and/or pause or resume a reminder."""
    reminder = await service.store.update_reminder(reminder_id, payload)
    if reminder is None:
        raise HTTPException(status_code=404, detail="Reminder not found")

    if not reminder.is_active:
        service.stop_reminder(reminder.id)
    elif not service.is_scheduled(reminder.id):
        service.start_reminder(reminder)
    elif payload.interval_minutes is not None:
        service.update_reminder(reminder)
    return _read(service, reminder)


@router.delete("/{reminder_id}")
async def delete_reminder_endpoint(reminder_id: int, service: ReminderService = Depends(get_reminder_service)):
    if not await service.store.delete_reminder(reminder_id):
        raise HTTPException(status_code=404, detail="Reminder not found")
    service.stop_reminder(reminder_id)
    return {"success": True}


@notifications_router.get("/{user_id}", response_model=PendingNotificationList)
async def list_pending_notifications_endpoint(
    user_id: str,
    queue: PendingNotificationQueue = Depends(get_notification_queue),
):
    """Pending notifications for a reconnecting user. Returned ones are marked sent."""
    pending = await queue.list_pending(user_id)
    if not pending:
        return PendingNotificationList(
            pending_notifications=[], count=0, message="No pending notifications"
        )
    await queue.mark_sent([n.id for n in pending])
    return PendingNotificationList(pending_notifications=pending, count=len(pending))


@notifications_router.delete("/{notification_id}")
async def dismiss_notification_endpoint(
    notification_id: int,
    queue: PendingNotificationQueue = Depends(get_notification_queue),
):
    if not await queue.dismiss(notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"success": True, "message": "Notification dismissed"}


def _parse_user_id(message: Dict[str, Any]) -> Optional[str]:
    user_id = message.get("userId", message.get("user_id"))
    if user_id is None or isinstance(user_id, (dict, list, bool)):
        return None
    return str(user_id)


@ws_router.websocket("/ws")
async def reminder_socket(websocket: WebSocket):
    """Socket protocol:
      {"type": "register", "userId": 7}   bind this socket to a user
      {"type": "ack", "reminderId": 5}    user acknowledged a reminder
    """
    manager: ConnectionManager = websocket.app.state.connection_manager
    await websocket.accept()
    user_id: Optional[str] = None
    try:
        while True:
            message = await websocket.receive_json()
            if not isinstance(message, dict):
                logger.info(f"[WS] Ignoring non-object message: {message!r}")
                continue
            kind = message.get("type")
            if kind == "register":
                new_user_id = _parse_user_id(message)
                if new_user_id is None:
                    await websocket.send_json({"type": "error", "error": "userId is required"})
                    continue
                if user_id is not None and user_id != new_user_id:
                    manager.disconnect(websocket, user_id)
                user_id = new_user_id
                await manager.register(websocket, user_id)
                await websocket.send_json({"type": "registered", "userId": user_id})
            elif kind == "ack":
                reminders_acknowledged_total.inc()
                logger.info(f"[WS] User {user_id} acknowledged reminder {message.get('reminderId')}")
                await websocket.send_json({"type": "ack", "reminderId": message.get("reminderId")})
            else:
                logger.info(f"[WS] Ignoring message type {kind!r}")
    except WebSocketDisconnect:
        pass
    except ValueError as e:
        logger.warning(f"[WS] Closing socket after malformed message: {e!r}")
        await websocket.close(code=1003)
    finally:
        manager.disconnect(websocket, user_id)
