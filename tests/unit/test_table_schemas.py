"""Tests for DynamoDB table schema definitions."""

import boto3
import pytest
from moto import mock_aws

from tests.unit.table_schemas import (
    CERTIFICATION_GROUPS_TABLE,
    ORDERS_TABLE,
    USERS_TABLE,
    create_all_tables,
    create_certification_groups_table_schema,
    create_orders_table_schema,
    create_sprints_table_schema,
    create_store_items_table_schema,
    create_users_table_schema,
)


class TestSchemas:
    """Tests for individual schemas."""

    @pytest.mark.parametrize(
        "factory",
        [create_sprints_table_schema, create_store_items_table_schema, create_certification_groups_table_schema],
    )
    def test_aggregates_keyed_by_id(self, factory) -> None:
        assert factory()["KeySchema"] == [{"AttributeName": "id", "KeyType": "HASH"}]

    def test_users_keyed_by_user_id(self) -> None:
        schema = create_users_table_schema()
        assert schema["TableName"] == USERS_TABLE
        assert schema["KeySchema"] == [{"AttributeName": "userId", "KeyType": "HASH"}]

    def test_groups_level_index(self) -> None:
        schema = create_certification_groups_table_schema()
        assert schema["TableName"] == CERTIFICATION_GROUPS_TABLE
        assert [gsi["IndexName"] for gsi in schema["GlobalSecondaryIndexes"]] == ["level-index"]

    def test_orders_user_index(self) -> None:
        schema = create_orders_table_schema()
        assert schema["TableName"] == ORDERS_TABLE
        assert [gsi["IndexName"] for gsi in schema["GlobalSecondaryIndexes"]] == ["userId-index"]

    def test_schemas_do_not_share_state(self) -> None:
        """Each call returns a fresh dict."""
        create_orders_table_schema()["AttributeDefinitions"].append({"AttributeName": "x", "AttributeType": "S"})
        assert len(create_orders_table_schema()["AttributeDefinitions"]) == 2


class TestCreateAllTables:
    """Tests for create_all_tables."""

    def test_creates_every_table(self, aws_credentials: None) -> None:
        with mock_aws():
            dynamodb = boto3.resource("dynamodb", region_name="us-east-1")
            tables = create_all_tables(dynamodb)

            assert sorted(tables) == ["certification_groups", "orders", "sprints", "store_items", "users"]
            client = boto3.client("dynamodb", region_name="us-east-1")
            assert len(client.list_tables()["TableNames"]) == 5
