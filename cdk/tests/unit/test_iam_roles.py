"""Tests for IAM roles module."""

from unittest.mock import MagicMock, patch

import pytest
from aws_cdk import App, Stack, assertions

from cdk.dynamodb_tables import create_dynamodb_tables
from cdk.iam_roles import create_lambda_execution_role

SENDER = "noreply@awsugmdu.com"


@pytest.fixture
def mock_stack():
    """Create a mock CDK stack."""
    app = App()
    return Stack(app, "TestStack")


@pytest.fixture
def mock_rn():
    """Create a mock resource naming function."""
    return lambda name: f"{name}-ue1-test"


@pytest.fixture
def mock_tables():
    """Create mock DynamoDB tables."""
    tables = {}
    for name in ["sprints", "certification_groups", "store_items", "orders", "users"]:
        mock_table = MagicMock()
        mock_table.table_arn = f"arn:aws:dynamodb:us-east-1:123456789012:table/{name}"
        mock_table.table_name = name
        tables[f"{name}_table"] = mock_table
    return tables


class TestCreateLambdaExecutionRole:
    """Tests for create_lambda_execution_role function."""

    @patch("cdk.iam_roles.iam.ManagedPolicy")
    @patch("cdk.iam_roles.iam.ServicePrincipal")
    @patch("cdk.iam_roles.iam.Role")
    def test_creates_role(
        self,
        mock_role_class,
        mock_service_principal,
        mock_managed_policy,
        mock_stack,
        mock_rn,
        mock_tables,
    ):
        """Function creates and returns an IAM role with the expected name."""
        mock_role = MagicMock()
        mock_role_class.return_value = mock_role

        result = create_lambda_execution_role(mock_stack, mock_rn, mock_tables, SENDER)

        assert result is mock_role
        mock_role_class.assert_called_once()
        assert mock_role_class.call_args.kwargs["role_name"] == "awsug-lambda-exec-ue1-test"

    @patch("cdk.iam_roles.iam.ManagedPolicy")
    @patch("cdk.iam_roles.iam.ServicePrincipal")
    @patch("cdk.iam_roles.iam.Role")
    def test_grants_table_access(
        self,
        mock_role_class,
        mock_service_principal,
        mock_managed_policy,
        mock_stack,
        mock_rn,
        mock_tables,
    ):
        """Each table grants read/write data to the role."""
        mock_role = MagicMock()
        mock_role_class.return_value = mock_role

        create_lambda_execution_role(mock_stack, mock_rn, mock_tables, SENDER)

        for table in mock_tables.values():
            table.grant_read_write_data.assert_called_once_with(mock_role)
        # One index statement per table plus SES
        assert mock_role.add_to_policy.call_count == len(mock_tables) + 1

    def test_ses_send_restricted_to_sender(self, mock_stack, mock_rn):
        """The role may only send email from the configured sender."""
        tables = create_dynamodb_tables(mock_stack, mock_rn)

        create_lambda_execution_role(mock_stack, mock_rn, tables, SENDER)

        template = assertions.Template.from_stack(mock_stack)
        template.has_resource_properties(
            "AWS::IAM::Policy",
            {
                "PolicyDocument": {
                    "Statement": assertions.Match.array_with(
                        [
                            assertions.Match.object_like(
                                {
                                    "Action": ["ses:SendEmail", "ses:SendRawEmail"],
                                    "Condition": {"StringEquals": {"ses:FromAddress": SENDER}},
                                }
                            )
                        ]
                    )
                }
            },
        )
