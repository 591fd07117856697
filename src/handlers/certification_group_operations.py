"""
Certification group Lambda handlers.

Serves /certification-groups: study groups with membership, a message
board (messages, replies, likes, pins) and scheduled study sessions, all
embedded in the group document.
"""

from typing import Any, Dict, List

from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

try:  # pragma: no cover
    from utils.aggregates import apply_mutation, find_index, get_document, now_iso, toggle_like  # type: ignore[import-not-found]
    from utils.dynamodb import query_all, scan_all, tables, to_dynamo_compatible  # type: ignore[import-not-found]
    from utils.errors import AppError, ErrorCode  # type: ignore[import-not-found]
    from utils.ids import GROUP, GROUP_SESSION, MESSAGE, REPLY, generate_id  # type: ignore[import-not-found]
    from utils.logging import get_logger  # type: ignore[import-not-found]
    from utils.responses import json_response  # type: ignore[import-not-found]
    from utils.routing import Request, Router, dispatch  # type: ignore[import-not-found]
    from utils.validation import pick_fields, require_fields, validate_choice  # type: ignore[import-not-found]
except ModuleNotFoundError:  # pragma: no cover
    from ..utils.aggregates import apply_mutation, find_index, get_document, now_iso, toggle_like
    from ..utils.dynamodb import query_all, scan_all, tables, to_dynamo_compatible
    from ..utils.errors import AppError, ErrorCode
    from ..utils.ids import GROUP, GROUP_SESSION, MESSAGE, REPLY, generate_id
    from ..utils.logging import get_logger
    from ..utils.responses import json_response
    from ..utils.routing import Request, Router, dispatch
    from ..utils.validation import pick_fields, require_fields, validate_choice

logger = get_logger(__name__)

LEVELS = ("Foundational", "Associate", "Professional", "Specialty")
DEFAULT_COLOR = "bg-blue-500"

GROUP_UPDATE_FIELDS = ("name", "description", "color")
SESSION_UPDATE_FIELDS = ("title", "description", "date", "time", "meetingLink")

GROUP_NOT_FOUND = "Group not found"
MESSAGE_NOT_FOUND = "Message not found"
REPLY_NOT_FOUND = "Reply not found"
SESSION_NOT_FOUND = "Session not found"


def _group_key(request: Request) -> Dict[str, str]:
    return {"id": request.params["id"]}


def _mutate_group(request: Request, mutate: Any) -> Dict[str, Any]:
    return apply_mutation(tables.certification_groups, _group_key(request), mutate, not_found_message=GROUP_NOT_FOUND)


def _required_user_id(body: Dict[str, Any]) -> str:
    if not body.get("userId"):
        raise AppError(ErrorCode.INVALID_INPUT, "userId is required", {"missingFields": ["userId"]})
    return str(body["userId"])


def _messages(group: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [dict(message) for message in group.get("messages") or []]


# ============================================================================
# Groups
# ============================================================================


def list_groups(request: Request) -> Dict[str, Any]:
    """List groups, optionally for one level (level-index)."""
    level = request.query.get("level")
    table = tables.certification_groups
    if level:
        groups = query_all(table, IndexName="level-index", KeyConditionExpression=Key("level").eq(level))
    else:
        groups = scan_all(table)
    return json_response(200, {"groups": groups})


def get_group(request: Request) -> Dict[str, Any]:
    group = get_document(tables.certification_groups, _group_key(request), GROUP_NOT_FOUND)
    return json_response(200, {"group": group})


def create_group(request: Request) -> Dict[str, Any]:
    """
    Create a group.

    Owners come from ``ownerIds`` or a single ``ownerId`` and are members
    from the start.
    """
    body = request.body
    require_fields(body, ["name", "level", "description"])
    validate_choice(body["level"], LEVELS, "level")

    owner_ids = body.get("ownerIds")
    if isinstance(owner_ids, list) and owner_ids:
        owners = list(dict.fromkeys(str(owner) for owner in owner_ids))
    elif body.get("ownerId"):
        owners = [str(body["ownerId"])]
    else:
        raise AppError(ErrorCode.INVALID_INPUT, "At least one owner is required")

    now = now_iso()
    group = {
        "id": generate_id(GROUP),
        "name": body["name"],
        "level": body["level"],
        "description": body["description"],
        "members": list(owners),
        "owners": owners,
        "color": body.get("color") or DEFAULT_COLOR,
        "scheduledSessions": [],
        "messages": [],
        "createdAt": now,
        "updatedAt": now,
        "version": 1,
    }

    tables.certification_groups.put_item(
        Item=to_dynamo_compatible(group), ConditionExpression="attribute_not_exists(id)"
    )
    logger.info("Created certification group", group_id=group["id"], group_level=group["level"], owners=len(owners))
    return json_response(201, {"group": group})


def update_group(request: Request) -> Dict[str, Any]:
    fields = {k: v for k, v in pick_fields(request.body, GROUP_UPDATE_FIELDS).items() if v != ""}

    group = _mutate_group(request, lambda _group: dict(fields))
    logger.info("Updated certification group", group_id=group["id"], fields=sorted(fields))
    return json_response(200, {"group": group})


def delete_group(request: Request) -> Dict[str, Any]:
    group_id = request.params["id"]
    try:
        tables.certification_groups.delete_item(Key={"id": group_id}, ConditionExpression="attribute_exists(id)")
    except ClientError as e:
        if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
            raise AppError(ErrorCode.NOT_FOUND, GROUP_NOT_FOUND)
        raise

    logger.info("Deleted certification group", group_id=group_id)
    return json_response(200, {"message": "Group deleted successfully"})


def join_group(request: Request) -> Dict[str, Any]:
    user_id = _required_user_id(request.body)

    def mutate(group: Dict[str, Any]) -> Dict[str, Any]:
        members = list(group.get("members") or [])
        if user_id in members:
            raise AppError(ErrorCode.ALREADY_EXISTS, "User already a member")
        return {"members": members + [user_id]}

    group = _mutate_group(request, mutate)
    logger.info("Joined certification group", group_id=group["id"], user_id=user_id)
    return json_response(200, {"group": group})


def leave_group(request: Request) -> Dict[str, Any]:
    """Leave a group. Owners cannot leave; a non-member leaving changes nothing."""
    user_id = _required_user_id(request.body)

    def mutate(group: Dict[str, Any]) -> Dict[str, Any]:
        if user_id in (group.get("owners") or []):
            raise AppError(ErrorCode.OWNER_CANNOT_LEAVE, "Owners cannot leave the group")
        members = list(group.get("members") or [])
        if user_id not in members:
            return {}
        return {"members": [member for member in members if member != user_id]}

    group = _mutate_group(request, mutate)
    logger.info("Left certification group", group_id=group["id"], user_id=user_id)
    return json_response(200, {"group": group})


# ============================================================================
# Messages
# ============================================================================


def post_message(request: Request) -> Dict[str, Any]:
    body = request.body
    require_fields(body, ["userId", "userName", "content"])
    now = now_iso()
    message = {
        "id": generate_id(MESSAGE),
        "groupId": request.params["id"],
        "userId": body["userId"],
        "userName": body["userName"],
        "userAvatar": body.get("userAvatar") or "",
        "content": body["content"],
        "createdAt": now,
        "updatedAt": now,
        "replies": [],
        "likes": 0,
        "likedBy": [],
        "isPinned": bool(body.get("isPinned", False)),
    }

    group = _mutate_group(request, lambda group: {"messages": _messages(group) + [message]})
    logger.info("Posted group message", group_id=group["id"], message_id=message["id"])
    return json_response(201, {"group": group, "message": message})


def update_message(request: Request) -> Dict[str, Any]:
    """Edit a message's content and/or pin state."""
    body = request.body
    message_id = request.params["messageId"]

    def mutate(group: Dict[str, Any]) -> Dict[str, Any]:
        messages = _messages(group)
        index = find_index(messages, message_id, MESSAGE_NOT_FOUND)
        if body.get("content"):
            messages[index]["content"] = body["content"]
        if body.get("isPinned") is not None:
            messages[index]["isPinned"] = bool(body["isPinned"])
        messages[index]["updatedAt"] = now_iso()
        return {"messages": messages}

    group = _mutate_group(request, mutate)
    logger.info("Updated group message", group_id=group["id"], message_id=message_id)
    return json_response(200, {"group": group})


def delete_message(request: Request) -> Dict[str, Any]:
    message_id = request.params["messageId"]

    def mutate(group: Dict[str, Any]) -> Dict[str, Any]:
        messages = _messages(group)
        index = find_index(messages, message_id, MESSAGE_NOT_FOUND)
        del messages[index]
        return {"messages": messages}

    group = _mutate_group(request, mutate)
    logger.info("Deleted group message", group_id=group["id"], message_id=message_id)
    return json_response(200, {"group": group})


def toggle_message_like(request: Request) -> Dict[str, Any]:
    user_id = _required_user_id(request.body)
    message_id = request.params["messageId"]
    outcome = {"liked": False}

    def mutate(group: Dict[str, Any]) -> Dict[str, Any]:
        messages = _messages(group)
        index = find_index(messages, message_id, MESSAGE_NOT_FOUND)
        outcome["liked"] = toggle_like(messages[index], user_id)
        return {"messages": messages}

    group = _mutate_group(request, mutate)
    return json_response(200, {"group": group, "liked": outcome["liked"]})


# ============================================================================
# Replies
# ============================================================================


def _with_reply_list(group: Dict[str, Any], message_id: str) -> tuple:
    messages = _messages(group)
    index = find_index(messages, message_id, MESSAGE_NOT_FOUND)
    replies = [dict(reply) for reply in messages[index].get("replies") or []]
    return messages, index, replies


def add_reply(request: Request) -> Dict[str, Any]:
    body = request.body
    require_fields(body, ["userId", "userName", "content"])
    message_id = request.params["messageId"]
    now = now_iso()
    reply = {
        "id": generate_id(REPLY),
        "messageId": message_id,
        "userId": body["userId"],
        "userName": body["userName"],
        "userAvatar": body.get("userAvatar") or "",
        "content": body["content"],
        "createdAt": now,
        "updatedAt": now,
        "likes": 0,
        "likedBy": [],
    }

    def mutate(group: Dict[str, Any]) -> Dict[str, Any]:
        messages, index, replies = _with_reply_list(group, message_id)
        messages[index]["replies"] = replies + [reply]
        return {"messages": messages}

    group = _mutate_group(request, mutate)
    logger.info("Added group reply", group_id=group["id"], message_id=message_id, reply_id=reply["id"])
    return json_response(201, {"group": group, "reply": reply})


def update_reply(request: Request) -> Dict[str, Any]:
    body = request.body
    if not body.get("content"):
        raise AppError(ErrorCode.INVALID_INPUT, "content is required", {"missingFields": ["content"]})
    message_id = request.params["messageId"]
    reply_id = request.params["replyId"]

    def mutate(group: Dict[str, Any]) -> Dict[str, Any]:
        messages, index, replies = _with_reply_list(group, message_id)
        reply_index = find_index(replies, reply_id, REPLY_NOT_FOUND)
        replies[reply_index].update(content=body["content"], updatedAt=now_iso())
        messages[index]["replies"] = replies
        return {"messages": messages}

    group = _mutate_group(request, mutate)
    logger.info("Updated group reply", group_id=group["id"], message_id=message_id, reply_id=reply_id)
    return json_response(200, {"group": group})


def delete_reply(request: Request) -> Dict[str, Any]:
    message_id = request.params["messageId"]
    reply_id = request.params["replyId"]

    def mutate(group: Dict[str, Any]) -> Dict[str, Any]:
        messages, index, replies = _with_reply_list(group, message_id)
        reply_index = find_index(replies, reply_id, REPLY_NOT_FOUND)
        del replies[reply_index]
        messages[index]["replies"] = replies
        return {"messages": messages}

    group = _mutate_group(request, mutate)
    logger.info("Deleted group reply", group_id=group["id"], message_id=message_id, reply_id=reply_id)
    return json_response(200, {"group": group})


def toggle_reply_like(request: Request) -> Dict[str, Any]:
    user_id = _required_user_id(request.body)
    message_id = request.params["messageId"]
    reply_id = request.params["replyId"]
    outcome = {"liked": False}

    def mutate(group: Dict[str, Any]) -> Dict[str, Any]:
        messages, index, replies = _with_reply_list(group, message_id)
        reply_index = find_index(replies, reply_id, REPLY_NOT_FOUND)
        outcome["liked"] = toggle_like(replies[reply_index], user_id)
        messages[index]["replies"] = replies
        return {"messages": messages}

    group = _mutate_group(request, mutate)
    return json_response(200, {"group": group, "liked": outcome["liked"]})


# ============================================================================
# Scheduled sessions
# ============================================================================


def create_session(request: Request) -> Dict[str, Any]:
    body = request.body
    require_fields(body, ["title", "description", "date", "time", "hostId", "hostName"])
    session = {
        "id": generate_id(GROUP_SESSION),
        "groupId": request.params["id"],
        "title": body["title"],
        "description": body["description"],
        "date": body["date"],
        "time": body["time"],
        "hostId": body["hostId"],
        "hostName": body["hostName"],
        "meetingLink": body.get("meetingLink") or "",
    }

    def mutate(group: Dict[str, Any]) -> Dict[str, Any]:
        return {"scheduledSessions": list(group.get("scheduledSessions") or []) + [session]}

    group = _mutate_group(request, mutate)
    logger.info("Scheduled group session", group_id=group["id"], session_id=session["id"])
    return json_response(201, {"group": group, "session": session})


def update_session(request: Request) -> Dict[str, Any]:
    body = request.body
    fields = {
        field: value
        for field, value in pick_fields(body, SESSION_UPDATE_FIELDS).items()
        if value != "" or field == "meetingLink"
    }
    session_id = request.params["sessionId"]

    def mutate(group: Dict[str, Any]) -> Dict[str, Any]:
        sessions = [dict(session) for session in group.get("scheduledSessions") or []]
        index = find_index(sessions, session_id, SESSION_NOT_FOUND)
        sessions[index].update(fields)
        return {"scheduledSessions": sessions}

    group = _mutate_group(request, mutate)
    logger.info("Updated group session", group_id=group["id"], session_id=session_id)
    return json_response(200, {"group": group})


def delete_session(request: Request) -> Dict[str, Any]:
    session_id = request.params["sessionId"]

    def mutate(group: Dict[str, Any]) -> Dict[str, Any]:
        sessions = list(group.get("scheduledSessions") or [])
        index = find_index(sessions, session_id, SESSION_NOT_FOUND)
        del sessions[index]
        return {"scheduledSessions": sessions}

    group = _mutate_group(request, mutate)
    logger.info("Deleted group session", group_id=group["id"], session_id=session_id)
    return json_response(200, {"group": group})


router = Router()
router.add("GET", "certification-groups", list_groups)
router.add("POST", "certification-groups", create_group)
router.add("GET", "certification-groups/{id}", get_group)
router.add("PUT", "certification-groups/{id}", update_group)
router.add("DELETE", "certification-groups/{id}", delete_group)
router.add("POST", "certification-groups/{id}/join", join_group)
router.add("POST", "certification-groups/{id}/leave", leave_group)
router.add("POST", "certification-groups/{id}/messages", post_message)
router.add("PUT", "certification-groups/{id}/messages/{messageId}", update_message)
router.add("DELETE", "certification-groups/{id}/messages/{messageId}", delete_message)
router.add("POST", "certification-groups/{id}/messages/{messageId}/like", toggle_message_like)
router.add("POST", "certification-groups/{id}/messages/{messageId}/replies", add_reply)
router.add("PUT", "certification-groups/{id}/messages/{messageId}/replies/{replyId}", update_reply)
router.add("DELETE", "certification-groups/{id}/messages/{messageId}/replies/{replyId}", delete_reply)
router.add("POST", "certification-groups/{id}/messages/{messageId}/replies/{replyId}/like", toggle_reply_like)
router.add("POST", "certification-groups/{id}/sessions", create_session)
router.add("PUT", "certification-groups/{id}/sessions/{sessionId}", update_session)
router.add("DELETE", "certification-groups/{id}/sessions/{sessionId}", delete_session)


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """API Gateway entry point for /certification-groups routes."""
    return dispatch(router, event, logger)
