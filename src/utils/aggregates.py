"""
Read-modify-write helpers for aggregate documents.

A sprint, certification group or store item is stored as one DynamoDB item
with its nested collections (sessions, messages, replies, ...) embedded as
lists. A mutation reads the whole document, computes new values for one or
more top-level attributes, and writes those attributes back in full.

Writes are guarded by an integer ``version`` attribute. When another writer
got there first the mutation is re-read and re-applied, up to
``MAX_ATTEMPTS`` times, before failing with a CONFLICT error.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Tuple

from botocore.exceptions import ClientError

from .dynamodb import get_dynamodb_client, to_attribute_values, to_dynamo_compatible
from .errors import AppError, ErrorCode
from .logging import get_logger

if TYPE_CHECKING:
    from mypy_boto3_dynamodb.service_resource import Table

logger = get_logger(__name__)

MAX_ATTEMPTS = 3

Document = Dict[str, Any]
Mutation = Callable[[Document], Dict[str, Any]]


@dataclass
class Companion:
    """An extra transaction item written atomically with a mutation.

    ``error`` is raised when this item's own condition fails.
    """

    item: Dict[str, Any]
    error: AppError


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def get_document(table: "Table", key: Dict[str, Any], not_found_message: str) -> Document:
    """
    Fetch a document by key with a consistent read.

    Raises:
        AppError: NOT_FOUND if the item does not exist
    """
    response = table.get_item(Key=key, ConsistentRead=True)
    item = response.get("Item")
    if not item:
        raise AppError(ErrorCode.NOT_FOUND, not_found_message)
    return item


def find_index(entries: List[Dict[str, Any]], entry_id: str, not_found_message: str) -> int:
    """
    Locate a nested entry by its ``id``.

    Raises:
        AppError: NOT_FOUND if no entry has that id
    """
    for index, entry in enumerate(entries):
        if entry.get("id") == entry_id:
            return index
    raise AppError(ErrorCode.NOT_FOUND, not_found_message)


def toggle_like(entry: Dict[str, Any], user_id: str) -> bool:
    """
    Toggle ``user_id`` in ``entry['likedBy']`` and resync ``likes``.

    Returns:
        True if the entry is now liked by the user
    """
    liked_by = list(entry.get("likedBy") or [])
    if user_id in liked_by:
        liked_by = [uid for uid in liked_by if uid != user_id]
        liked = False
    else:
        liked_by.append(user_id)
        liked = True
    entry["likedBy"] = liked_by
    entry["likes"] = len(liked_by)
    return liked


def build_versioned_update(
    key: Dict[str, Any], updates: Dict[str, Any], expected_version: Optional[Any]
) -> Tuple[str, Dict[str, str], Dict[str, Any], str]:
    """
    Build the expression parts for a version-guarded SET of top-level attributes.

    Returns:
        (UpdateExpression, ExpressionAttributeNames, ExpressionAttributeValues, ConditionExpression)
        with plain (unserialized) values
    """
    names: Dict[str, str] = {"#version": "version", "#updatedAt": "updatedAt"}
    values: Dict[str, Any] = {}
    assignments: List[str] = []

    fields = {k: v for k, v in updates.items() if k not in ("updatedAt", "version")}
    for index, (attribute, value) in enumerate(fields.items()):
        names[f"#a{index}"] = attribute
        values[f":a{index}"] = to_dynamo_compatible(value)
        assignments.append(f"#a{index} = :a{index}")

    assignments.append("#updatedAt = :updatedAt")
    values[":updatedAt"] = updates.get("updatedAt") or now_iso()
    assignments.append("#version = :nextVersion")

    key_name = next(iter(key))
    names["#key"] = key_name
    if expected_version is None:
        values[":nextVersion"] = 1
        condition = "attribute_exists(#key) AND attribute_not_exists(#version)"
    else:
        values[":nextVersion"] = int(expected_version) + 1
        values[":expectedVersion"] = expected_version
        condition = "attribute_exists(#key) AND #version = :expectedVersion"

    return "SET " + ", ".join(assignments), names, values, condition


def versioned_transact_update(
    table_name: str, key: Dict[str, Any], updates: Dict[str, Any], expected_version: Optional[Any]
) -> Dict[str, Any]:
    """Build a transact_write_items ``Update`` entry guarded by the document version."""
    expression, names, values, condition = build_versioned_update(key, updates, expected_version)
    return {
        "Update": {
            "TableName": table_name,
            "Key": to_attribute_values(key),
            "UpdateExpression": expression,
            "ConditionExpression": condition,
            "ExpressionAttributeNames": names,
            "ExpressionAttributeValues": to_attribute_values(values),
        }
    }


def cancellation_codes(error: ClientError) -> List[str]:
    """Per-item cancellation codes from a TransactionCanceledException."""
    reasons = error.response.get("CancellationReasons") or []
    return [str(reason.get("Code") or "None") for reason in reasons]


def _write(
    table: "Table",
    key: Dict[str, Any],
    updates: Dict[str, Any],
    expected_version: Optional[Any],
    companions: List[Companion],
) -> Document:
    if not companions:
        expression, names, values, condition = build_versioned_update(key, updates, expected_version)
        response = table.update_item(
            Key=key,
            UpdateExpression=expression,
            ConditionExpression=condition,
            ExpressionAttributeNames=names,
            ExpressionAttributeValues=values,
            ReturnValues="ALL_NEW",
        )
        return response["Attributes"]

    transact_items = [versioned_transact_update(table.name, key, updates, expected_version)]
    transact_items.extend(companion.item for companion in companions)
    get_dynamodb_client().transact_write_items(TransactItems=transact_items)  # type: ignore[arg-type]
    return table.get_item(Key=key, ConsistentRead=True)["Item"]


def apply_mutation(
    table: "Table",
    key: Dict[str, Any],
    mutate: Mutation,
    *,
    not_found_message: str,
    companions: Optional[Callable[[Document], List[Companion]]] = None,
    max_attempts: int = MAX_ATTEMPTS,
) -> Document:
    """
    Apply a mutation to one aggregate document.

    Args:
        table: Table holding the document
        key: Primary key of the document
        mutate: Receives the current document and returns the top-level
            attributes to overwrite. Returning an empty dict skips the write.
            May raise AppError for missing nested entries or invalid input.
        not_found_message: Message for the NOT_FOUND error
        companions: Optional callback returning extra items to commit in the
            same transaction as the document write
        max_attempts: Attempts before giving up on concurrent writers

    Returns:
        The document after the write

    Raises:
        AppError: NOT_FOUND, errors raised by ``mutate``, a companion's error,
            or CONFLICT when every attempt lost a race
    """
    for attempt in range(1, max_attempts + 1):
        document = get_document(table, key, not_found_message)
        updates = mutate(document)
        if not updates:
            return document

        extra = companions(document) if companions else []
        try:
            return _write(table, key, updates, document.get("version"), extra)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code == "TransactionCanceledException":
                reasons = cancellation_codes(e)
                for companion, reason in zip(extra, reasons[1:]):
                    if reason == "ConditionalCheckFailed":
                        raise companion.error
            elif code != "ConditionalCheckFailedException":
                raise

            logger.warning(
                "Concurrent modification detected, retrying",
                key=key,
                attempt=attempt,
                attributes=sorted(updates),
            )

    raise AppError(ErrorCode.CONFLICT, "The record was modified concurrently, please retry")
