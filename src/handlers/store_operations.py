"""
Store Lambda handlers.

Serves the points store: item CRUD, orders, the order status state machine,
code assignment and redemption. Redemption and code assignment commit their
writes in a single DynamoDB transaction.
"""

from typing import Any, Dict, List, Optional

from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

try:  # pragma: no cover
    from utils.aggregates import (  # type: ignore[import-not-found]
        MAX_ATTEMPTS,
        apply_mutation,
        cancellation_codes,
        get_document,
        now_iso,
        versioned_transact_update,
    )
    from utils.dynamodb import (  # type: ignore[import-not-found]
        get_dynamodb_client,
        query_all,
        scan_all,
        tables,
        to_attribute_values,
        to_dynamo_compatible,
    )
    from utils.errors import AppError, ErrorCode  # type: ignore[import-not-found]
    from utils.ids import ORDER, STORE_ITEM, generate_id  # type: ignore[import-not-found]
    from utils.logging import get_logger  # type: ignore[import-not-found]
    from utils.notifications import send_order_completed_email, send_redemption_code_email  # type: ignore[import-not-found]
    from utils.responses import json_response  # type: ignore[import-not-found]
    from utils.routing import Request, Router, dispatch  # type: ignore[import-not-found]
    from utils.validation import pick_fields, require_fields, validate_choice, validate_points  # type: ignore[import-not-found]
except ModuleNotFoundError:  # pragma: no cover
    from ..utils.aggregates import (
        MAX_ATTEMPTS,
        apply_mutation,
        cancellation_codes,
        get_document,
        now_iso,
        versioned_transact_update,
    )
    from ..utils.dynamodb import (
        get_dynamodb_client,
        query_all,
        scan_all,
        tables,
        to_attribute_values,
        to_dynamo_compatible,
    )
    from ..utils.errors import AppError, ErrorCode
    from ..utils.ids import ORDER, STORE_ITEM, generate_id
    from ..utils.logging import get_logger
    from ..utils.notifications import send_order_completed_email, send_redemption_code_email
    from ..utils.responses import json_response
    from ..utils.routing import Request, Router, dispatch
    from ..utils.validation import pick_fields, require_fields, validate_choice, validate_points

logger = get_logger(__name__)

ITEM_TYPES = ("virtual", "physical")
ITEM_UPDATE_FIELDS = ("name", "description", "points", "image", "inStock", "category", "itemType", "availableCodes")

ORDER_STATUSES = ("pending", "processing", "completed", "cancelled")
ORDER_TRANSITIONS: Dict[str, tuple] = {
    "pending": ("processing", "completed", "cancelled"),
    "processing": ("completed", "cancelled"),
    "completed": (),
    "cancelled": (),
}

ITEM_NOT_FOUND = "Item not found"
ORDER_NOT_FOUND = "Order not found"


def _codes(item: Dict[str, Any]) -> List[str]:
    return [str(code) for code in item.get("availableCodes") or []]


def _with_stock(fields: Dict[str, Any], merged: Dict[str, Any]) -> Dict[str, Any]:
    """Recompute inStock for virtual items whenever their codes are written."""
    if merged.get("itemType") == "virtual" and "availableCodes" in fields:
        fields["inStock"] = len(fields["availableCodes"]) > 0
    return fields


def _get_user(user_id: str) -> Optional[Dict[str, Any]]:
    response = tables.users.get_item(Key={"userId": user_id}, ConsistentRead=True)
    return response.get("Item")


def _validate_item_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    if "points" in fields:
        fields["points"] = validate_points(fields["points"])
    if "itemType" in fields:
        validate_choice(fields["itemType"], ITEM_TYPES, "itemType")
    if "availableCodes" in fields:
        codes = fields["availableCodes"]
        if not isinstance(codes, list) or not all(isinstance(code, str) for code in codes):
            raise AppError(ErrorCode.INVALID_INPUT, "availableCodes must be a list of strings")
    if "inStock" in fields and not isinstance(fields["inStock"], bool):
        raise AppError(ErrorCode.INVALID_INPUT, "inStock must be a boolean")
    return fields


# ============================================================================
# Items
# ============================================================================


def list_items(request: Request) -> Dict[str, Any]:
    """List all store items."""
    items = scan_all(tables.store_items)
    return json_response(200, items)


def create_item(request: Request) -> Dict[str, Any]:
    """
    Create a store item.

    Defaults: category 'general', itemType 'physical', no codes, in stock.
    Virtual items are in stock exactly when they have codes left.
    """
    body = request.body
    require_fields(body, ["name", "points"])
    fields = _validate_item_fields(pick_fields(body, ITEM_UPDATE_FIELDS))

    now = now_iso()
    item: Dict[str, Any] = {
        "id": generate_id(STORE_ITEM),
        "name": fields["name"],
        "description": fields.get("description", ""),
        "points": fields["points"],
        "inStock": fields.get("inStock", True),
        "category": fields.get("category") or "general",
        "itemType": fields.get("itemType") or "physical",
        "availableCodes": fields.get("availableCodes", []),
        "createdAt": now,
        "updatedAt": now,
        "version": 1,
    }
    if fields.get("image"):
        item["image"] = fields["image"]
    _with_stock(item, item)

    tables.store_items.put_item(
        Item=to_dynamo_compatible(item), ConditionExpression="attribute_not_exists(id)"
    )
    logger.info("Created store item", item_id=item["id"], item_type=item["itemType"])
    return json_response(201, item)


def get_item(request: Request) -> Dict[str, Any]:
    item = get_document(tables.store_items, {"id": request.params["id"]}, ITEM_NOT_FOUND)
    return json_response(200, item)


def update_item(request: Request) -> Dict[str, Any]:
    """Update whitelisted item fields; virtual stock follows the codes."""
    fields = _validate_item_fields(pick_fields(request.body, ITEM_UPDATE_FIELDS))

    def mutate(item: Dict[str, Any]) -> Dict[str, Any]:
        updates = dict(fields)
        merged = {**item, **updates}
        if merged.get("itemType") == "virtual" and "availableCodes" not in updates and "itemType" in updates:
            # Switching to virtual recomputes stock from the codes already held
            updates["availableCodes"] = _codes(item)
        return _with_stock(updates, merged)

    item = apply_mutation(
        tables.store_items, {"id": request.params["id"]}, mutate, not_found_message=ITEM_NOT_FOUND
    )
    logger.info("Updated store item", item_id=item["id"], fields=sorted(fields))
    return json_response(200, item)


def delete_item(request: Request) -> Dict[str, Any]:
    item_id = request.params["id"]
    try:
        tables.store_items.delete_item(Key={"id": item_id}, ConditionExpression="attribute_exists(id)")
    except ClientError as e:
        if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
            raise AppError(ErrorCode.NOT_FOUND, ITEM_NOT_FOUND)
        raise

    logger.info("Deleted store item", item_id=item_id)
    return json_response(200, {"message": "Item deleted successfully"})


# ============================================================================
# Orders
# ============================================================================


def list_orders(request: Request) -> Dict[str, Any]:
    """List orders, optionally only those of one user (userId-index)."""
    user_id = request.query.get("userId")
    if user_id:
        orders = query_all(
            tables.orders,
            IndexName="userId-index",
            KeyConditionExpression=Key("userId").eq(user_id),
        )
    else:
        orders = scan_all(tables.orders)
    return json_response(200, orders)


def create_order(request: Request) -> Dict[str, Any]:
    """Create a pending order directly (admin/manual fulfilment path)."""
    body = request.body
    require_fields(body, ["userId", "itemId"])

    now = now_iso()
    order: Dict[str, Any] = {
        "id": generate_id(ORDER),
        "userId": body["userId"],
        "itemId": body["itemId"],
        "status": "pending",
        "shippingAddress": body.get("shippingAddress") or {},
        "createdAt": now,
        "updatedAt": now,
    }
    for field in ("itemName", "itemType"):
        if body.get(field) is not None:
            order[field] = body[field]
    if body.get("points") is not None:
        order["points"] = validate_points(body["points"])

    tables.orders.put_item(
        Item=to_dynamo_compatible(order), ConditionExpression="attribute_not_exists(id)"
    )
    logger.info("Created order", order_id=order["id"], user_id=order["userId"], item_id=order["itemId"])
    return json_response(201, order)


def get_order(request: Request) -> Dict[str, Any]:
    order = get_document(tables.orders, {"id": request.params["id"]}, ORDER_NOT_FOUND)
    return json_response(200, order)


def update_order_status(request: Request) -> Dict[str, Any]:
    """
    Move an order through its state machine.

    Re-submitting the current status is allowed so admin notes can be
    edited. Completing a physical order emails the user.

    Raises:
        AppError: INVALID_INPUT for an unknown status, INVALID_STATUS_TRANSITION
            for a disallowed move, CONFLICT if the status changed meanwhile
    """
    body = request.body
    require_fields(body, ["status"])
    new_status = validate_choice(body["status"], ORDER_STATUSES, "status")

    order_id = request.params["id"]
    order = get_document(tables.orders, {"id": order_id}, ORDER_NOT_FOUND)
    current_status = str(order.get("status") or "pending")

    if new_status != current_status and new_status not in ORDER_TRANSITIONS.get(current_status, ()):
        raise AppError(
            ErrorCode.INVALID_STATUS_TRANSITION,
            f"Cannot change order status from {current_status} to {new_status}",
            {"currentStatus": current_status, "requestedStatus": new_status},
        )

    update_expressions = ["#status = :status", "#updatedAt = :updatedAt"]
    names = {"#status": "status", "#updatedAt": "updatedAt"}
    values: Dict[str, Any] = {":status": new_status, ":updatedAt": now_iso(), ":current": current_status}
    if body.get("adminNotes") is not None:
        update_expressions.append("#adminNotes = :adminNotes")
        names["#adminNotes"] = "adminNotes"
        values[":adminNotes"] = body["adminNotes"]

    if "status" in order:
        condition = "attribute_exists(id) AND #status = :current"
    else:
        condition = "attribute_exists(id) AND attribute_not_exists(#status)"
        del values[":current"]

    try:
        response = tables.orders.update_item(
            Key={"id": order_id},
            UpdateExpression="SET " + ", ".join(update_expressions),
            ConditionExpression=condition,
            ExpressionAttributeNames=names,
            ExpressionAttributeValues=values,
            ReturnValues="ALL_NEW",
        )
    except ClientError as e:
        if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
            raise AppError(ErrorCode.CONFLICT, "Order status changed concurrently, please retry")
        raise

    updated = response["Attributes"]
    logger.info("Updated order status", order_id=order_id, from_status=current_status, to_status=new_status)

    if new_status == "completed" and current_status != "completed" and updated.get("itemType") == "physical":
        send_order_completed_email(
            _get_user(str(updated["userId"])), str(updated.get("itemName") or "item"), updated.get("adminNotes")
        )

    return json_response(200, updated)


def assign_code_to_order(request: Request) -> Dict[str, Any]:
    """
    Attach a code to an order and consume it from the item.

    The order update (code, completed) and the item's code removal commit
    together; the code email follows.
    """
    body = request.body
    require_fields(body, ["code"])
    code = str(body["code"])
    order_id = request.params["id"]
    orders_table = tables.orders
    items_table = tables.store_items

    for attempt in range(1, MAX_ATTEMPTS + 1):
        order = get_document(orders_table, {"id": order_id}, ORDER_NOT_FOUND)
        if order.get("code"):
            raise AppError(ErrorCode.CODE_ALREADY_ASSIGNED, "Order already has a code assigned", {"orderId": order_id})
        if order.get("status") == "cancelled":
            raise AppError(ErrorCode.INVALID_STATUS_TRANSITION, "Cannot assign a code to a cancelled order")

        now = now_iso()
        transact_items: List[Dict[str, Any]] = [
            {
                "Update": {
                    "TableName": orders_table.name,
                    "Key": to_attribute_values({"id": order_id}),
                    "UpdateExpression": "SET #code = :code, #status = :status, #updatedAt = :updatedAt",
                    "ConditionExpression": "attribute_exists(id) AND attribute_not_exists(#code)",
                    "ExpressionAttributeNames": {"#code": "code", "#status": "status", "#updatedAt": "updatedAt"},
                    "ExpressionAttributeValues": to_attribute_values(
                        {":code": code, ":status": "completed", ":updatedAt": now}
                    ),
                }
            }
        ]

        item_response = items_table.get_item(Key={"id": order.get("itemId", "")}, ConsistentRead=True)
        item = item_response.get("Item")
        if item is not None:
            remaining = [c for c in _codes(item) if c != code]
            transact_items.append(
                versioned_transact_update(
                    items_table.name,
                    {"id": item["id"]},
                    _with_stock({"availableCodes": remaining, "updatedAt": now}, item),
                    item.get("version"),
                )
            )

        try:
            get_dynamodb_client().transact_write_items(TransactItems=transact_items)  # type: ignore[arg-type]
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") != "TransactionCanceledException":
                raise
            reasons = cancellation_codes(e)
            if reasons and reasons[0] == "ConditionalCheckFailed":
                raise AppError(ErrorCode.CODE_ALREADY_ASSIGNED, "Order already has a code assigned", {"orderId": order_id})
            logger.warning("Code assignment lost a race, retrying", order_id=order_id, attempt=attempt, reasons=reasons)
            continue

        updated = get_document(orders_table, {"id": order_id}, ORDER_NOT_FOUND)
        logger.info("Assigned code to order", order_id=order_id, item_id=order.get("itemId"))
        send_redemption_code_email(
            _get_user(str(updated["userId"])), str(updated.get("itemName") or "item"), updated.get("points", 0), code
        )
        return json_response(200, updated)

    raise AppError(ErrorCode.CONFLICT, "The record was modified concurrently, please retry")


# ============================================================================
# Redemption
# ============================================================================


def _debit_entry(users_table_name: str, user_id: str, cost: int) -> Dict[str, Any]:
    """Transaction entry debiting ``cost`` points, only if the balance covers it."""
    if cost == 0:
        condition = "attribute_exists(userId)"
    else:
        condition = "attribute_exists(userId) AND #points >= :cost"
    return {
        "Update": {
            "TableName": users_table_name,
            "Key": to_attribute_values({"userId": user_id}),
            "UpdateExpression": "SET #points = if_not_exists(#points, :zero) - :cost",
            "ConditionExpression": condition,
            "ExpressionAttributeNames": {"#points": "points"},
            "ExpressionAttributeValues": to_attribute_values({":cost": cost, ":zero": 0}),
        }
    }


def redeem_item(request: Request) -> Dict[str, Any]:
    """
    Redeem an item for points.

    The debit, the new order and the item's stock change are one
    transaction: either all are written or none. A virtual item with codes
    is fulfilled immediately with its first code and the code is emailed.

    Returns:
        200 with {message, order, remainingPoints}

    Raises:
        AppError: NOT_FOUND (item/user), OUT_OF_STOCK, INSUFFICIENT_POINTS,
            CONFLICT after repeated races
    """
    body = request.body
    require_fields(body, ["userId"])
    user_id = str(body["userId"])
    item_id = request.params["id"]
    items_table = tables.store_items
    users_table = tables.users

    for attempt in range(1, MAX_ATTEMPTS + 1):
        item = get_document(items_table, {"id": item_id}, ITEM_NOT_FOUND)
        if not item.get("inStock"):
            raise AppError(ErrorCode.OUT_OF_STOCK, "Item is out of stock", {"itemId": item_id})

        user = _get_user(user_id)
        if user is None:
            raise AppError(ErrorCode.NOT_FOUND, "User not found")

        cost = validate_points(item.get("points", 0))
        balance = int(user.get("points") or 0)
        if balance < cost:
            raise AppError(
                ErrorCode.INSUFFICIENT_POINTS, "Insufficient points", {"required": cost, "available": balance}
            )

        now = now_iso()
        order: Dict[str, Any] = {
            "id": generate_id(ORDER),
            "userId": user_id,
            "itemId": item_id,
            "itemName": item.get("name", ""),
            "itemType": item.get("itemType", "physical"),
            "points": cost,
            "status": "pending",
            "shippingAddress": body.get("shippingAddress") or {},
            "createdAt": now,
            "updatedAt": now,
        }

        codes = _codes(item)
        code: Optional[str] = None
        if item.get("itemType") == "virtual" and codes:
            code = codes[0]
            order["code"] = code
            order["status"] = "completed"
            item_entry = versioned_transact_update(
                items_table.name,
                {"id": item_id},
                {"availableCodes": codes[1:], "inStock": len(codes) > 1, "updatedAt": now},
                item.get("version"),
            )
        else:
            item_entry = {
                "ConditionCheck": {
                    "TableName": items_table.name,
                    "Key": to_attribute_values({"id": item_id}),
                    "ConditionExpression": "attribute_exists(id) AND #inStock = :true",
                    "ExpressionAttributeNames": {"#inStock": "inStock"},
                    "ExpressionAttributeValues": to_attribute_values({":true": True}),
                }
            }

        transact_items = [
            _debit_entry(users_table.name, user_id, cost),
            {
                "Put": {
                    "TableName": tables.orders.name,
                    "Item": to_attribute_values(order),
                    "ConditionExpression": "attribute_not_exists(id)",
                }
            },
            item_entry,
        ]

        try:
            get_dynamodb_client().transact_write_items(TransactItems=transact_items)  # type: ignore[arg-type]
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") != "TransactionCanceledException":
                raise
            reasons = cancellation_codes(e)
            if reasons and reasons[0] == "ConditionalCheckFailed":
                raise AppError(ErrorCode.INSUFFICIENT_POINTS, "Insufficient points")
            logger.warning("Redemption lost a race, retrying", item_id=item_id, attempt=attempt, reasons=reasons)
            continue

        refreshed = _get_user(user_id) or {}
        remaining_points = refreshed.get("points", balance - cost)
        logger.info(
            "Redeemed item",
            item_id=item_id,
            user_id=user_id,
            order_id=order["id"],
            status=order["status"],
            cost=cost,
        )

        if code is not None:
            send_redemption_code_email(user, str(order["itemName"]), cost, code)

        return json_response(
            200,
            {"message": "Item redeemed successfully", "order": order, "remainingPoints": remaining_points},
        )

    raise AppError(ErrorCode.CONFLICT, "The record was modified concurrently, please retry")


router = Router()
router.add("GET", "store/items", list_items)
router.add("POST", "store/items", create_item)
router.add("GET", "store/items/{id}", get_item)
router.add("PUT", "store/items/{id}", update_item)
router.add("DELETE", "store/items/{id}", delete_item)
router.add("POST", "store/items/{id}/redeem", redeem_item)
router.add("GET", "store/orders", list_orders)
router.add("POST", "store/orders", create_order)
router.add("GET", "store/orders/{id}", get_order)
router.add("PATCH", "store/orders/{id}/status", update_order_status)
router.add("PATCH", "store/orders/{id}/assign-code", assign_code_to_order)


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """API Gateway entry point for /store routes."""
    return dispatch(router, event, logger)
