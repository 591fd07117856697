"""Lambda function definitions for the community platform stack.

This module creates all Lambda functions used by the application:
- Sprint operations (/sprints)
- Certification group operations (/certification-groups)
- Store operations (/store)
- Scheduled sprint status sync
"""

import os
from typing import TYPE_CHECKING, Any, Dict

from aws_cdk import Duration
from aws_cdk import aws_iam as iam
from aws_cdk import aws_lambda as lambda_
from constructs import Construct

if TYPE_CHECKING:
    from aws_cdk import aws_dynamodb as dynamodb


def create_lambda_functions(
    scope: Construct,
    rn: Any,  # Resource naming function
    lambda_execution_role: iam.IRole,
    tables: Dict[str, "dynamodb.ITable"],
    sender_email: str,
    community_name: str,
    log_level: str = "INFO",
) -> dict[str, lambda_.Function]:
    """Create all Lambda functions for the stack.

    Args:
        scope: CDK construct scope
        rn: Resource naming function (name -> formatted name)
        lambda_execution_role: IAM role for Lambda execution
        tables: Tables keyed as returned by create_dynamodb_tables
        sender_email: SES sender address for store emails
        community_name: Signature used in emails
        log_level: LOG_LEVEL for the structured logger

    Returns:
        Dictionary containing all Lambda functions
    """
    # Common Lambda environment variables
    lambda_env = {
        "LOG_LEVEL": log_level,
        "SPRINTS_TABLE_NAME": tables["sprints_table"].table_name,
        "CERTIFICATION_GROUPS_TABLE_NAME": tables["certification_groups_table"].table_name,
        "STORE_ITEMS_TABLE_NAME": tables["store_items_table"].table_name,
        "ORDERS_TABLE_NAME": tables["orders_table"].table_name,
        "USERS_TABLE_NAME": tables["users_table"].table_name,
        "SES_FROM_EMAIL": sender_email,
        "COMMUNITY_NAME": community_name,
    }

    # Use only the src directory for Lambda code (not the entire repo)
    lambda_code_path = os.path.join(os.path.dirname(__file__), "..", "..", "src")

    lambda_code = lambda_.Code.from_asset(
        lambda_code_path,
        exclude=[
            "__pycache__",
            "*.pyc",
            ".pytest_cache",
        ],
    )

    def function(construct_id: str, name: str, handler: str, timeout: int = 30) -> lambda_.Function:
        return lambda_.Function(
            scope,
            construct_id,
            function_name=rn(name),
            runtime=lambda_.Runtime.PYTHON_3_13,
            handler=handler,
            code=lambda_code,
            timeout=Duration.seconds(timeout),
            memory_size=256,
            role=lambda_execution_role,
            environment=lambda_env,
        )

    sprints_fn = function("SprintsFn", "awsug-sprints-crud", "handlers.sprint_operations.lambda_handler")
    certification_groups_fn = function(
        "CertificationGroupsFn",
        "awsug-certifications-crud",
        "handlers.certification_group_operations.lambda_handler",
    )
    store_fn = function("StoreFn", "awsug-store-crud", "handlers.store_operations.lambda_handler")

    # Scans every sprint, so allow longer than the API functions
    sync_sprint_statuses_fn = function(
        "SyncSprintStatusesFn",
        "awsug-sync-sprint-statuses",
        "handlers.sprint_operations.sync_sprint_statuses",
        timeout=120,
    )

    return {
        "sprints_fn": sprints_fn,
        "certification_groups_fn": certification_groups_fn,
        "store_fn": store_fn,
        "sync_sprint_statuses_fn": sync_sprint_statuses_fn,
    }
