"""
Test fixtures for Lambda function tests.

Provides common test data and mocked AWS resources.
"""

import json
from typing import Any, Callable, Dict, Generator, Optional

import boto3
import pytest
from moto import mock_aws

from src.utils.dynamodb import clear_all_overrides, reset_singleton
from tests.unit.table_schemas import (
    CERTIFICATION_GROUPS_TABLE,
    ORDERS_TABLE,
    SPRINTS_TABLE,
    STORE_ITEMS_TABLE,
    USERS_TABLE,
    create_all_tables,
)

SENDER_EMAIL = "noreply@awsugmdu.com"


@pytest.fixture
def aws_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    """Set fake AWS credentials and table names for moto."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    monkeypatch.setenv("SPRINTS_TABLE_NAME", SPRINTS_TABLE)
    monkeypatch.setenv("CERTIFICATION_GROUPS_TABLE_NAME", CERTIFICATION_GROUPS_TABLE)
    monkeypatch.setenv("STORE_ITEMS_TABLE_NAME", STORE_ITEMS_TABLE)
    monkeypatch.setenv("ORDERS_TABLE_NAME", ORDERS_TABLE)
    monkeypatch.setenv("USERS_TABLE_NAME", USERS_TABLE)
    monkeypatch.setenv("SES_FROM_EMAIL", SENDER_EMAIL)
    monkeypatch.delenv("DYNAMODB_ENDPOINT", raising=False)
    monkeypatch.delenv("SES_ENDPOINT", raising=False)


@pytest.fixture
def dynamodb_tables(aws_credentials: None) -> Generator[Dict[str, Any], None, None]:
    """Create all mock DynamoDB tables plus a verified SES sender."""
    with mock_aws():
        clear_all_overrides()
        reset_singleton()
        dynamodb = boto3.resource("dynamodb", region_name="us-east-1")
        created = create_all_tables(dynamodb)

        ses = boto3.client("ses", region_name="us-east-1")
        ses.verify_email_identity(EmailAddress=SENDER_EMAIL)

        yield created

        clear_all_overrides()


@pytest.fixture
def sprints_table(dynamodb_tables: Dict[str, Any]) -> Any:
    return dynamodb_tables["sprints"]


@pytest.fixture
def groups_table(dynamodb_tables: Dict[str, Any]) -> Any:
    return dynamodb_tables["certification_groups"]


@pytest.fixture
def store_items_table(dynamodb_tables: Dict[str, Any]) -> Any:
    return dynamodb_tables["store_items"]


@pytest.fixture
def orders_table(dynamodb_tables: Dict[str, Any]) -> Any:
    return dynamodb_tables["orders"]


@pytest.fixture
def users_table(dynamodb_tables: Dict[str, Any]) -> Any:
    return dynamodb_tables["users"]


@pytest.fixture
def lambda_context() -> Any:
    """Mock Lambda context."""

    class Context:
        function_name = "test-function"
        memory_limit_in_mb = 128
        invoked_function_arn = "arn:aws:lambda:us-east-1:123456789012:function:test-function"
        aws_request_id = "test-request-id"

    return Context()


@pytest.fixture
def api_event() -> Callable[..., Dict[str, Any]]:
    """Build API Gateway REST proxy events."""

    def _build(
        method: str,
        path: str,
        body: Optional[Any] = None,
        query: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        return {
            "httpMethod": method,
            "path": path,
            "queryStringParameters": query,
            "headers": {"Content-Type": "application/json"},
            "body": None if body is None else (body if isinstance(body, str) else json.dumps(body)),
            "isBase64Encoded": False,
            "requestContext": {"requestId": "req-123", "path": f"/dev{path}"},
        }

    return _build
