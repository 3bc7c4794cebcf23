import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from workforce.container import Container
from workforce.core.auth import get_container, get_current_user
from workforce.core.exceptions import CollaboratorFailure
from workforce.schemas.notification import MarkAllReadResponse, NotificationResponse, UnreadCountResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=List[NotificationResponse])
async def list_notifications(
    limit: int = 50,
    offset: int = 0,
    unread_only: bool = False,
    container: Container = Depends(get_container),
    current_user=Depends(get_current_user)
):
    if not 1 <= limit <= 100 or offset < 0:
        raise HTTPException(400, "Invalid pagination parameters")
    try:
        return await container.dispatcher.list_for_user(current_user["id"], limit, offset, unread_only)
    except CollaboratorFailure as e:
        logger.error("Listing notifications for %s failed: %s", current_user["id"], e)
        raise HTTPException(500, "Failed to load notifications")


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    container: Container = Depends(get_container),
    current_user=Depends(get_current_user)
):
    try:
        return UnreadCountResponse(count=await container.dispatcher.unread_count(current_user["id"]))
    except CollaboratorFailure as e:
        logger.error("Unread count for %s failed: %s", current_user["id"], e)
        raise HTTPException(500, "Failed to count notifications")


@router.patch("/read-all", response_model=MarkAllReadResponse)
async def mark_all_as_read(
    container: Container = Depends(get_container),
    current_user=Depends(get_current_user)
):
    try:
        return MarkAllReadResponse(updated=await container.dispatcher.mark_all_as_read(current_user["id"]))
    except CollaboratorFailure as e:
        logger.error("Mark all read for %s failed: %s", current_user["id"], e)
        raise HTTPException(500, "Failed to update notifications")


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
async def mark_as_read(
    notification_id: int,
    container: Container = Depends(get_container),
    current_user=Depends(get_current_user)
):
    try:
        notification = await container.dispatcher.mark_as_read(notification_id, current_user["id"])
    except CollaboratorFailure as e:
        logger.error("Mark read %s failed: %s", notification_id, e)
        raise HTTPException(500, "Failed to update notification")
    if notification is None:
        raise HTTPException(404, "Notification not found")
    return notification


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: int,
    container: Container = Depends(get_container),
    current_user=Depends(get_current_user)
):
    try:
        deleted = await container.dispatcher.delete(notification_id, current_user["id"])
    except CollaboratorFailure as e:
        logger.error("Delete notification %s failed: %s", notification_id, e)
        raise HTTPException(500, "Failed to delete notification")
    if not deleted:
        raise HTTPException(404, "Notification not found")
    return {"message": "Notification deleted"}
