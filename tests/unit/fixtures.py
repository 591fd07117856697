"""
Test data builders for Lambda function tests.

Provides factory functions for creating stored documents with sensible
defaults and customization options. Use these to seed tables without
repeating boilerplate across test files.
"""

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4


def iso_days_from_now(days: float) -> str:
    """ISO timestamp ``days`` from now (negative for the past)."""
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


def make_sprint(
    sprint_id: Optional[str] = None,
    start_days: float = -1,
    end_days: float = 7,
    status: Optional[str] = "active",
    **overrides: Any,
) -> Dict[str, Any]:
    """Build a stored sprint running from ``start_days`` to ``end_days`` relative to now."""
    now = datetime.now(timezone.utc).isoformat()
    sprint: Dict[str, Any] = {
        "id": sprint_id or f"sprint-{uuid4().hex[:8]}",
        "title": "Serverless Sprint",
        "theme": "Serverless",
        "description": "Build something serverless",
        "startDate": iso_days_from_now(start_days),
        "endDate": iso_days_from_now(end_days),
        "participants": 0,
        "sessions": [],
        "submissions": [],
        "registeredUsers": [],
        "forumPosts": [],
        "createdAt": now,
        "updatedAt": now,
        "version": 1,
    }
    if status is not None:
        sprint["status"] = status
    sprint.update(overrides)
    return sprint


def make_group(
    group_id: Optional[str] = None,
    owners: Optional[List[str]] = None,
    members: Optional[List[str]] = None,
    **overrides: Any,
) -> Dict[str, Any]:
    """Build a stored certification group; owners are members by default."""
    owner_ids = owners or ["owner-1"]
    now = datetime.now(timezone.utc).isoformat()
    group: Dict[str, Any] = {
        "id": group_id or f"group-{uuid4().hex[:8]}",
        "name": "SAA Study Group",
        "level": "Associate",
        "description": "Solutions Architect Associate prep",
        "members": members if members is not None else list(owner_ids),
        "owners": owner_ids,
        "color": "bg-blue-500",
        "scheduledSessions": [],
        "messages": [],
        "createdAt": now,
        "updatedAt": now,
        "version": 1,
    }
    group.update(overrides)
    return group


def make_message(message_id: str = "msg-1", group_id: str = "group-1", **overrides: Any) -> Dict[str, Any]:
    """Build a group message with no replies or likes."""
    message: Dict[str, Any] = {
        "id": message_id,
        "groupId": group_id,
        "userId": "user-1",
        "userName": "Asha",
        "userAvatar": "",
        "content": "Anyone up for a practice exam?",
        "createdAt": "2026-01-01T00:00:00+00:00",
        "updatedAt": "2026-01-01T00:00:00+00:00",
        "replies": [],
        "likes": 0,
        "likedBy": [],
        "isPinned": False,
    }
    message.update(overrides)
    return message


def make_store_item(
    item_id: Optional[str] = None,
    points: int = 100,
    item_type: str = "physical",
    codes: Optional[List[str]] = None,
    **overrides: Any,
) -> Dict[str, Any]:
    """Build a stored store item; virtual items are in stock when they hold codes."""
    available_codes = codes or []
    item: Dict[str, Any] = {
        "id": item_id or f"item-{uuid4().hex[:8]}",
        "name": "AWS Sticker Pack" if item_type == "physical" else "Exam Voucher",
        "description": "Community swag",
        "points": points,
        "category": "general",
        "itemType": item_type,
        "availableCodes": available_codes,
        "inStock": True if item_type == "physical" else len(available_codes) > 0,
        "createdAt": "2026-01-01T00:00:00+00:00",
        "updatedAt": "2026-01-01T00:00:00+00:00",
        "version": 1,
    }
    item.update(overrides)
    return item


def make_user(user_id: str = "user-1", points: int = 500, email: Optional[str] = "asha@example.com") -> Dict[str, Any]:
    """Build a stored user record."""
    user: Dict[str, Any] = {"userId": user_id, "points": points, "name": "Asha"}
    if email:
        user["email"] = email
    return user


def make_order(
    order_id: str = "order-1",
    user_id: str = "user-1",
    item_id: str = "item-1",
    status: str = "pending",
    **overrides: Any,
) -> Dict[str, Any]:
    """Build a stored order."""
    order: Dict[str, Any] = {
        "id": order_id,
        "userId": user_id,
        "itemId": item_id,
        "itemName": "AWS Sticker Pack",
        "itemType": "physical",
        "points": 100,
        "status": status,
        "shippingAddress": {},
        "createdAt": "2026-01-01T00:00:00+00:00",
        "updatedAt": "2026-01-01T00:00:00+00:00",
    }
    order.update(overrides)
    return order


def response_body(response: Dict[str, Any]) -> Any:
    """Decode a proxy response body."""
    return json.loads(response["body"])
