"""
Sprint Lambda handlers.

Serves /sprints: sprint CRUD, sessions and their registrations, sprint
registration, work submissions and their review, and the sprint forum.

Sprint status is derived from the dates whenever a sprint is returned.
Reads never write it back; ``sync_sprint_statuses`` runs on a schedule to
persist it.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from botocore.exceptions import ClientError

try:  # pragma: no cover
    from utils.aggregates import Companion, apply_mutation, find_index, get_document, now_iso  # type: ignore[import-not-found]
    from utils.dynamodb import scan_all, tables, to_attribute_values, to_dynamo_compatible  # type: ignore[import-not-found]
    from utils.errors import AppError, ErrorCode  # type: ignore[import-not-found]
    from utils.ids import FORUM_POST, REPLY, SPRINT, SPRINT_SESSION, SUBMISSION, generate_id  # type: ignore[import-not-found]
    from utils.logging import get_logger  # type: ignore[import-not-found]
    from utils.responses import json_response  # type: ignore[import-not-found]
    from utils.routing import Request, Router, dispatch  # type: ignore[import-not-found]
    from utils.validation import (  # type: ignore[import-not-found]
        parse_datetime,
        pick_fields,
        require_fields,
        validate_choice,
        validate_points,
    )
except ModuleNotFoundError:  # pragma: no cover
    from ..utils.aggregates import Companion, apply_mutation, find_index, get_document, now_iso
    from ..utils.dynamodb import scan_all, tables, to_attribute_values, to_dynamo_compatible
    from ..utils.errors import AppError, ErrorCode
    from ..utils.ids import FORUM_POST, REPLY, SPRINT, SPRINT_SESSION, SUBMISSION, generate_id
    from ..utils.logging import get_logger
    from ..utils.responses import json_response
    from ..utils.routing import Request, Router, dispatch
    from ..utils.validation import parse_datetime, pick_fields, require_fields, validate_choice, validate_points

logger = get_logger(__name__)

SPRINT_STATUSES = ("upcoming", "active", "completed")
REVIEW_STATUSES = ("approved", "rejected")

SPRINT_UPDATE_FIELDS = ("title", "theme", "description", "startDate", "endDate", "githubRepo")
SESSION_FIELDS = (
    "title",
    "speaker",
    "speakerId",
    "speakerPhoto",
    "speakerDesignation",
    "speakerCompany",
    "speakerBio",
    "speakerLinkedIn",
    "hosts",
    "speakers",
    "volunteers",
    "date",
    "time",
    "duration",
    "description",
    "richDescription",
    "agenda",
    "meetingLink",
    "meetupUrl",
    "recordingUrl",
    "youtubeUrl",
    "slidesUrl",
    "posterImage",
)

SPRINT_NOT_FOUND = "Sprint not found"
SESSION_NOT_FOUND = "Session not found"
SUBMISSION_NOT_FOUND = "Submission not found"
POST_NOT_FOUND = "Post not found"

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def derive_sprint_status(now: datetime, start: datetime, end: datetime) -> str:
    """
    Status of a sprint at ``now``.

    Examples:
        before start -> 'upcoming'; start <= now <= end -> 'active';
        after end -> 'completed'
    """
    if now < start:
        return "upcoming"
    if now <= end:
        return "active"
    return "completed"


def current_status(sprint: Dict[str, Any], now: Optional[datetime] = None) -> Optional[str]:
    """Derived status for a stored sprint; the stored value if its dates are unreadable."""
    try:
        start = parse_datetime(sprint.get("startDate"), "startDate")
        end = parse_datetime(sprint.get("endDate"), "endDate")
    except AppError:
        logger.warning("Sprint has unreadable dates", sprint_id=sprint.get("id"))
        return sprint.get("status")
    return derive_sprint_status(now or datetime.now(timezone.utc), start, end)


def present(sprint: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    """Copy of a sprint with its status derived for the response."""
    return {**sprint, "status": current_status(sprint, now)}


def _start_key(sprint: Dict[str, Any]) -> datetime:
    try:
        return parse_datetime(sprint.get("startDate"), "startDate")
    except AppError:
        return _EPOCH


def _validate_dates(start_value: Any, end_value: Any) -> None:
    start = parse_datetime(start_value, "startDate")
    end = parse_datetime(end_value, "endDate")
    if end <= start:
        raise AppError(ErrorCode.INVALID_INPUT, "End date must be after start date")


def _sprint_key(request: Request) -> Dict[str, str]:
    return {"id": request.params["id"]}


def _mutate_sprint(request: Request, mutate: Any, **kwargs: Any) -> Dict[str, Any]:
    return apply_mutation(tables.sprints, _sprint_key(request), mutate, not_found_message=SPRINT_NOT_FOUND, **kwargs)


# ============================================================================
# Sprints
# ============================================================================


def list_sprints(request: Request) -> Dict[str, Any]:
    """
    List sprints, newest start date first.

    The optional ``status`` query parameter filters on the derived status.
    """
    status = request.query.get("status")
    if status:
        validate_choice(status, SPRINT_STATUSES, "status")

    now = datetime.now(timezone.utc)
    sprints = [present(sprint, now) for sprint in scan_all(tables.sprints)]
    if status:
        sprints = [sprint for sprint in sprints if sprint["status"] == status]
    sprints.sort(key=_start_key, reverse=True)
    return json_response(200, {"sprints": sprints})


def get_sprint(request: Request) -> Dict[str, Any]:
    sprint = get_document(tables.sprints, _sprint_key(request), SPRINT_NOT_FOUND)
    return json_response(200, {"sprint": present(sprint)})


def create_sprint(request: Request) -> Dict[str, Any]:
    """
    Create a sprint.

    Requires title, description, startDate and endDate with end after start.
    """
    body = request.body
    require_fields(body, ["title", "description", "startDate", "endDate"])
    _validate_dates(body["startDate"], body["endDate"])

    now = now_iso()
    sprint: Dict[str, Any] = {
        "id": generate_id(SPRINT),
        "title": body["title"],
        "theme": body.get("theme") or "",
        "description": body["description"],
        "startDate": body["startDate"],
        "endDate": body["endDate"],
        "participants": 0,
        "sessions": [],
        "submissions": [],
        "registeredUsers": [],
        "forumPosts": [],
        "createdAt": now,
        "updatedAt": now,
        "version": 1,
    }
    if body.get("githubRepo"):
        sprint["githubRepo"] = body["githubRepo"]
    sprint["status"] = current_status(sprint)

    tables.sprints.put_item(
        Item=to_dynamo_compatible(sprint), ConditionExpression="attribute_not_exists(id)"
    )
    logger.info("Created sprint", sprint_id=sprint["id"], status=sprint["status"])
    return json_response(201, {"sprint": sprint})


def update_sprint(request: Request) -> Dict[str, Any]:
    """Update sprint details; the resulting dates must still be ordered."""
    fields = pick_fields(request.body, SPRINT_UPDATE_FIELDS)
    if not fields:
        raise AppError(ErrorCode.INVALID_INPUT, "No fields to update")

    def mutate(sprint: Dict[str, Any]) -> Dict[str, Any]:
        merged = {**sprint, **fields}
        if "startDate" in fields or "endDate" in fields:
            _validate_dates(merged.get("startDate"), merged.get("endDate"))
            return {**fields, "status": current_status(merged)}
        return dict(fields)

    sprint = _mutate_sprint(request, mutate)
    logger.info("Updated sprint", sprint_id=sprint["id"], fields=sorted(fields))
    return json_response(200, {"sprint": present(sprint)})


def delete_sprint(request: Request) -> Dict[str, Any]:
    """Delete a sprint along with its embedded sessions, submissions and posts."""
    sprint_id = request.params["id"]
    try:
        tables.sprints.delete_item(Key={"id": sprint_id}, ConditionExpression="attribute_exists(id)")
    except ClientError as e:
        if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
            raise AppError(ErrorCode.NOT_FOUND, SPRINT_NOT_FOUND)
        raise

    logger.info("Deleted sprint", sprint_id=sprint_id)
    return json_response(200, {"message": "Sprint deleted successfully", "id": sprint_id})


def register_for_sprint(request: Request) -> Dict[str, Any]:
    """Register a user; registering twice is a no-op reported as alreadyRegistered."""
    body = request.body
    require_fields(body, ["userId"])
    user_id = body["userId"]
    outcome = {"alreadyRegistered": False}

    def mutate(sprint: Dict[str, Any]) -> Dict[str, Any]:
        registered = list(sprint.get("registeredUsers") or [])
        outcome["alreadyRegistered"] = user_id in registered
        if outcome["alreadyRegistered"]:
            return {}
        registered.append(user_id)
        return {"registeredUsers": registered, "participants": len(registered)}

    sprint = _mutate_sprint(request, mutate)
    if outcome["alreadyRegistered"]:
        message = "User already registered"
    else:
        message = "Successfully registered for sprint"
        logger.info("Registered for sprint", sprint_id=sprint["id"], user_id=user_id)

    return json_response(
        200, {"sprint": present(sprint), "message": message, "alreadyRegistered": outcome["alreadyRegistered"]}
    )


# ============================================================================
# Sessions
# ============================================================================


def add_session(request: Request) -> Dict[str, Any]:
    body = request.body
    require_fields(body, ["title", "date", "time"])
    now = now_iso()
    session = {
        "id": generate_id(SPRINT_SESSION),
        **pick_fields(body, SESSION_FIELDS),
        "registeredUsers": [],
        "createdAt": now,
        "updatedAt": now,
    }

    def mutate(sprint: Dict[str, Any]) -> Dict[str, Any]:
        return {"sessions": list(sprint.get("sessions") or []) + [session]}

    sprint = _mutate_sprint(request, mutate)
    logger.info("Added sprint session", sprint_id=sprint["id"], session_id=session["id"])
    return json_response(201, {"sprint": present(sprint), "session": session})


def update_session(request: Request) -> Dict[str, Any]:
    fields = pick_fields(request.body, SESSION_FIELDS)
    session_id = request.params["sessionId"]
    updated: Dict[str, Any] = {}

    def mutate(sprint: Dict[str, Any]) -> Dict[str, Any]:
        sessions = list(sprint.get("sessions") or [])
        index = find_index(sessions, session_id, SESSION_NOT_FOUND)
        sessions[index] = {**sessions[index], **fields, "updatedAt": now_iso()}
        updated.update(sessions[index])
        return {"sessions": sessions}

    sprint = _mutate_sprint(request, mutate)
    logger.info("Updated sprint session", sprint_id=sprint["id"], session_id=session_id)
    return json_response(200, {"sprint": present(sprint), "session": updated})


def delete_session(request: Request) -> Dict[str, Any]:
    session_id = request.params["sessionId"]

    def mutate(sprint: Dict[str, Any]) -> Dict[str, Any]:
        sessions = list(sprint.get("sessions") or [])
        index = find_index(sessions, session_id, SESSION_NOT_FOUND)
        del sessions[index]
        return {"sessions": sessions}

    sprint = _mutate_sprint(request, mutate)
    logger.info("Deleted sprint session", sprint_id=sprint["id"], session_id=session_id)
    return json_response(200, {"sprint": present(sprint), "message": "Session deleted successfully"})


def register_for_session(request: Request) -> Dict[str, Any]:
    """Register a user for one session; idempotent like sprint registration."""
    body = request.body
    require_fields(body, ["userId"])
    user_id = body["userId"]
    session_id = request.params["sessionId"]
    outcome: Dict[str, Any] = {"alreadyRegistered": False, "session": None}

    def mutate(sprint: Dict[str, Any]) -> Dict[str, Any]:
        sessions = list(sprint.get("sessions") or [])
        index = find_index(sessions, session_id, SESSION_NOT_FOUND)
        session = sessions[index]
        registered = list(session.get("registeredUsers") or [])
        if user_id in registered:
            outcome.update(alreadyRegistered=True, session=session)
            return {}
        sessions[index] = {**session, "registeredUsers": registered + [user_id], "updatedAt": now_iso()}
        outcome.update(alreadyRegistered=False, session=sessions[index])
        return {"sessions": sessions}

    sprint = _mutate_sprint(request, mutate)
    if outcome["alreadyRegistered"]:
        message = "User already registered for this session"
    else:
        message = "Successfully registered for session"
        logger.info("Registered for session", sprint_id=sprint["id"], session_id=session_id, user_id=user_id)

    return json_response(
        200,
        {
            "sprint": present(sprint),
            "session": outcome["session"],
            "message": message,
            "alreadyRegistered": outcome["alreadyRegistered"],
        },
    )


# ============================================================================
# Submissions
# ============================================================================


def submit_work(request: Request) -> Dict[str, Any]:
    """
    Submit work for a sprint.

    A user may hold only one pending submission per sprint.
    """
    body = request.body
    require_fields(body, ["userId", "userName"])
    sprint_id = request.params["id"]
    submission = {
        "id": generate_id(SUBMISSION),
        "sprintId": sprint_id,
        "userId": body["userId"],
        "userName": body["userName"],
        **{field: body[field] for field in ("userAvatar", "blogUrl", "repoUrl", "description") if body.get(field)},
        "submittedAt": now_iso(),
        "points": 0,
        "status": "pending",
    }

    def mutate(sprint: Dict[str, Any]) -> Dict[str, Any]:
        submissions = list(sprint.get("submissions") or [])
        for existing in submissions:
            if existing.get("userId") == submission["userId"] and existing.get("status") == "pending":
                raise AppError(
                    ErrorCode.ALREADY_EXISTS,
                    "You already have a pending submission for this sprint",
                    {"submissionId": existing.get("id")},
                )
        return {"submissions": submissions + [submission]}

    sprint = _mutate_sprint(request, mutate)
    logger.info("Submitted work", sprint_id=sprint_id, submission_id=submission["id"], user_id=submission["userId"])
    return json_response(201, {"sprint": present(sprint), "submission": submission})


def review_submission(request: Request) -> Dict[str, Any]:
    """
    Approve or reject a pending submission.

    Approving with points credits them to the submitter in the same
    transaction as the sprint write.

    Raises:
        AppError: INVALID_INPUT for a bad status or points,
            INVALID_STATUS_TRANSITION if already reviewed,
            NOT_FOUND if the sprint, submission or submitter is missing
    """
    body = request.body
    require_fields(body, ["status"])
    status = validate_choice(body["status"], REVIEW_STATUSES, "status")
    points = validate_points(body.get("points", 0)) if status == "approved" else 0
    submission_id = request.params["submissionId"]
    reviewed: Dict[str, Any] = {}

    def mutate(sprint: Dict[str, Any]) -> Dict[str, Any]:
        submissions = list(sprint.get("submissions") or [])
        index = find_index(submissions, submission_id, SUBMISSION_NOT_FOUND)
        current = submissions[index]
        if current.get("status", "pending") != "pending":
            raise AppError(
                ErrorCode.INVALID_STATUS_TRANSITION,
                "Submission has already been reviewed",
                {"status": current.get("status")},
            )
        submissions[index] = {
            **current,
            "status": status,
            "points": points,
            "reviewedAt": now_iso(),
            **pick_fields(body, ("feedback", "reviewedBy")),
        }
        reviewed.clear()
        reviewed.update(submissions[index])
        return {"submissions": submissions}

    def credit_points(sprint: Dict[str, Any]) -> List[Companion]:
        if status != "approved" or points == 0:
            return []
        return [
            Companion(
                item={
                    "Update": {
                        "TableName": tables.users.name,
                        "Key": to_attribute_values({"userId": reviewed["userId"]}),
                        "UpdateExpression": "ADD #points :points",
                        "ConditionExpression": "attribute_exists(userId)",
                        "ExpressionAttributeNames": {"#points": "points"},
                        "ExpressionAttributeValues": to_attribute_values({":points": points}),
                    }
                },
                error=AppError(ErrorCode.NOT_FOUND, "User not found"),
            )
        ]

    sprint = _mutate_sprint(request, mutate, companions=credit_points)
    logger.info(
        "Reviewed submission",
        sprint_id=sprint["id"],
        submission_id=submission_id,
        status=status,
        points=points,
    )
    return json_response(200, {"sprint": present(sprint), "submission": reviewed})


# ============================================================================
# Forum
# ============================================================================


def create_forum_post(request: Request) -> Dict[str, Any]:
    body = request.body
    require_fields(body, ["userId", "userName", "title", "content"])
    post = {
        "id": generate_id(FORUM_POST),
        "sprintId": request.params["id"],
        "userId": body["userId"],
        "userName": body["userName"],
        **({"userAvatar": body["userAvatar"]} if body.get("userAvatar") else {}),
        "title": body["title"],
        "content": body["content"],
        "createdAt": now_iso(),
        "replies": [],
        "likes": 0,
    }

    def mutate(sprint: Dict[str, Any]) -> Dict[str, Any]:
        return {"forumPosts": list(sprint.get("forumPosts") or []) + [post]}

    sprint = _mutate_sprint(request, mutate)
    logger.info("Created forum post", sprint_id=sprint["id"], post_id=post["id"])
    return json_response(201, {"sprint": present(sprint), "post": post})


def reply_to_forum_post(request: Request) -> Dict[str, Any]:
    body = request.body
    require_fields(body, ["userId", "userName", "content"])
    post_id = request.params["postId"]
    reply = {
        "id": generate_id(REPLY),
        "postId": post_id,
        "userId": body["userId"],
        "userName": body["userName"],
        **({"userAvatar": body["userAvatar"]} if body.get("userAvatar") else {}),
        "content": body["content"],
        "createdAt": now_iso(),
        "likes": 0,
    }

    def mutate(sprint: Dict[str, Any]) -> Dict[str, Any]:
        posts = list(sprint.get("forumPosts") or [])
        index = find_index(posts, post_id, POST_NOT_FOUND)
        posts[index] = {**posts[index], "replies": list(posts[index].get("replies") or []) + [reply]}
        return {"forumPosts": posts}

    sprint = _mutate_sprint(request, mutate)
    logger.info("Replied to forum post", sprint_id=sprint["id"], post_id=post_id, reply_id=reply["id"])
    return json_response(201, {"sprint": present(sprint), "reply": reply})


router = Router()
router.add("GET", "sprints", list_sprints)
router.add("POST", "sprints", create_sprint)
router.add("GET", "sprints/{id}", get_sprint)
router.add("PUT", "sprints/{id}", update_sprint)
router.add("DELETE", "sprints/{id}", delete_sprint)
router.add("POST", "sprints/{id}/sessions", add_session)
router.add("PUT", "sprints/{id}/sessions/{sessionId}", update_session)
router.add("DELETE", "sprints/{id}/sessions/{sessionId}", delete_session)
router.add("POST", "sprints/{id}/sessions/{sessionId}/register", register_for_session)
router.add("POST", "sprints/{id}/register", register_for_sprint)
router.add("POST", "sprints/{id}/submit", submit_work)
router.add("PUT", "sprints/{id}/submissions/{submissionId}", review_submission)
router.add("POST", "sprints/{id}/forum", create_forum_post)
router.add("POST", "sprints/{id}/forum/{postId}/reply", reply_to_forum_post)


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """API Gateway entry point for /sprints routes."""
    return dispatch(router, event, logger)


def sync_sprint_statuses(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Persist derived sprint statuses (scheduled).

    Each write is conditional on the status that was read, so a sprint
    changed in the meantime is skipped and picked up on the next run.

    Returns:
        Counts of sprints checked, updated and skipped
    """
    table = tables.sprints
    now = datetime.now(timezone.utc)
    checked = updated = skipped = 0

    for sprint in scan_all(table):
        checked += 1
        new_status = current_status(sprint, now)
        old_status = sprint.get("status")
        if new_status is None or new_status == old_status:
            continue

        values: Dict[str, Any] = {":new": new_status, ":updatedAt": now.isoformat()}
        if old_status is None:
            condition = "attribute_exists(id) AND attribute_not_exists(#status)"
        else:
            condition = "attribute_exists(id) AND #status = :old"
            values[":old"] = old_status

        try:
            table.update_item(
                Key={"id": sprint["id"]},
                UpdateExpression="SET #status = :new, #updatedAt = :updatedAt",
                ConditionExpression=condition,
                ExpressionAttributeNames={"#status": "status", "#updatedAt": "updatedAt"},
                ExpressionAttributeValues=values,
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") != "ConditionalCheckFailedException":
                raise
            skipped += 1
            logger.warning("Sprint changed during status sync, skipping", sprint_id=sprint["id"])
            continue

        updated += 1
        logger.info("Synced sprint status", sprint_id=sprint["id"], from_status=old_status, to_status=new_status)

    logger.info("Sprint status sync complete", checked=checked, updated=updated, skipped=skipped)
    return {"checked": checked, "updated": updated, "skipped": skipped}
