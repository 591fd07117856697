"""
Centralized DynamoDB table access utilities.

Provides singleton-pattern table accessors with lazy initialization
and test monkeypatch support, plus helpers for scans and transactions.
"""

import os
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import boto3
from boto3.dynamodb.types import TypeSerializer

if TYPE_CHECKING:
    from mypy_boto3_dynamodb import DynamoDBClient, DynamoDBServiceResource
    from mypy_boto3_dynamodb.service_resource import Table


# Module-level cache for test overrides
_table_overrides: dict[str, Optional["Table"]] = {}

_serializer = TypeSerializer()


def get_required_env(name: str, default: Optional[str] = None) -> str:
    """Get a required environment variable.

    In Lambda/production, the env var must be set. For tests, a default can be
    provided to allow the code to run in mocked environments.

    Args:
        name: Environment variable name
        default: Optional default for test environments

    Returns:
        The environment variable value

    Raises:
        ValueError: If the env var is not set and no default is provided
    """
    value = os.getenv(name, default)
    if value is None:
        raise ValueError(f"Required environment variable '{name}' is not set")
    return value


def _get_dynamodb() -> "DynamoDBServiceResource":
    """Get DynamoDB resource with optional endpoint override for LocalStack."""
    return boto3.resource("dynamodb", endpoint_url=os.getenv("DYNAMODB_ENDPOINT"))


def get_dynamodb_client() -> "DynamoDBClient":
    """Get a low-level DynamoDB client for transact_write_items."""
    return boto3.client("dynamodb", endpoint_url=os.getenv("DYNAMODB_ENDPOINT"))


class TableAccessor:
    """Centralized access to DynamoDB tables with environment-based naming."""

    _instance: Optional["TableAccessor"] = None

    _env_names = {
        "sprints": "SPRINTS_TABLE_NAME",
        "certification_groups": "CERTIFICATION_GROUPS_TABLE_NAME",
        "store_items": "STORE_ITEMS_TABLE_NAME",
        "orders": "ORDERS_TABLE_NAME",
        "users": "USERS_TABLE_NAME",
    }

    def __new__(cls) -> "TableAccessor":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def _table(self, key: str) -> "Table":
        if override := _table_overrides.get(key):
            return override
        name = self.table_name(key)
        return _get_dynamodb().Table(name)

    def table_name(self, key: str) -> str:
        """Resolve the physical table name for a logical table key."""
        return get_required_env(self._env_names[key])

    @property
    def sprints(self) -> "Table":
        """Get sprints table instance."""
        return self._table("sprints")

    @property
    def certification_groups(self) -> "Table":
        """Get certification groups table instance."""
        return self._table("certification_groups")

    @property
    def store_items(self) -> "Table":
        """Get store items table instance."""
        return self._table("store_items")

    @property
    def orders(self) -> "Table":
        """Get orders table instance."""
        return self._table("orders")

    @property
    def users(self) -> "Table":
        """Get users table instance (keyed by userId)."""
        return self._table("users")


# Singleton instance for import
tables = TableAccessor()


def scan_all(table: "Table", **kwargs: Any) -> List[Dict[str, Any]]:
    """Scan a table following LastEvaluatedKey until exhausted."""
    items: List[Dict[str, Any]] = []
    while True:
        response = table.scan(**kwargs)
        items.extend(response.get("Items", []))
        last_key = response.get("LastEvaluatedKey")
        if not last_key:
            return items
        kwargs["ExclusiveStartKey"] = last_key


def query_all(table: "Table", **kwargs: Any) -> List[Dict[str, Any]]:
    """Query a table or index following LastEvaluatedKey until exhausted."""
    items: List[Dict[str, Any]] = []
    while True:
        response = table.query(**kwargs)
        items.extend(response.get("Items", []))
        last_key = response.get("LastEvaluatedKey")
        if not last_key:
            return items
        kwargs["ExclusiveStartKey"] = last_key


def to_dynamo_compatible(value: Any) -> Any:
    """
    Convert a JSON-decoded value into something boto3 can store.

    Floats become Decimal (boto3 rejects float), None entries are dropped
    from maps.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: to_dynamo_compatible(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [to_dynamo_compatible(v) for v in value]
    return value


def to_attribute_values(values: Dict[str, Any]) -> Dict[str, Any]:
    """Serialize a plain mapping to DynamoDB attribute-value format for the client API."""
    return {k: _serializer.serialize(to_dynamo_compatible(v)) for k, v in values.items()}


# Test utilities
def override_table(table_name: str, table: Optional["Table"]) -> None:
    """Override a table for testing. Set to None to clear override."""
    _table_overrides[table_name] = table


def clear_all_overrides() -> None:
    """Clear all table overrides (call in test teardown)."""
    _table_overrides.clear()


def reset_singleton() -> None:
    """Reset the singleton instance (for testing isolation)."""
    TableAccessor._instance = None
