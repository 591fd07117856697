import os

from aws_cdk import (
    CfnOutput,
    Duration,
    Stack,
)
from aws_cdk import aws_apigateway as apigateway
from aws_cdk import aws_events as events
from aws_cdk import aws_events_targets as targets
from aws_cdk import aws_lambda as lambda_
from constructs import Construct

from cdk.dynamodb_tables import create_dynamodb_tables
from cdk.helpers import get_context_bool, get_region_abbrev, is_protected_environment, make_resource_namer
from cdk.iam_roles import create_lambda_execution_role
from cdk.lambdas import create_lambda_functions

DEFAULT_SENDER_EMAIL = "noreply@awsugmdu.com"
DEFAULT_COMMUNITY_NAME = "AWS User Group MDU"

# How often stored sprint statuses are brought in line with their dates
SPRINT_STATUS_SYNC_RATE = Duration.minutes(15)


class CdkStack(Stack):
    """
    Community Platform - Core Infrastructure Stack

    Creates:
    - DynamoDB tables for sprints, certification groups, store items, orders and users
    - IAM role for the Lambda functions
    - Lambda functions for each API resource plus the sprint status sync
    - REST API (proxy integration, CORS) and the sync schedule
    """

    def __init__(self, scope: Construct, construct_id: str, env_name: str = "dev", **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.env_name = env_name

        # Helper for consistent resource naming: {name}-{region}-{env}
        rn = make_resource_namer(get_region_abbrev(), env_name)
        self.resource_name = rn

        # Load configuration from environment variables
        sender_email = os.getenv("SES_FROM_EMAIL", DEFAULT_SENDER_EMAIL)
        community_name = os.getenv("COMMUNITY_NAME", DEFAULT_COMMUNITY_NAME)
        log_level = os.getenv("LOG_LEVEL", "INFO")
        protect = is_protected_environment(env_name) or get_context_bool(self, "protect_tables")

        # ====================================================================
        # DynamoDB Tables
        # ====================================================================

        self.tables = create_dynamodb_tables(self, rn, protect=protect)

        # ====================================================================
        # Lambda Functions
        # ====================================================================

        self.lambda_execution_role = create_lambda_execution_role(self, rn, self.tables, sender_email)
        self.functions = create_lambda_functions(
            self,
            rn,
            self.lambda_execution_role,
            self.tables,
            sender_email=sender_email,
            community_name=community_name,
            log_level=log_level,
        )

        # ====================================================================
        # REST API
        # ====================================================================

        self.api = apigateway.RestApi(
            self,
            "CommunityApi",
            rest_api_name=rn("awsug-api"),
            description=f"Community platform API ({env_name})",
            deploy_options=apigateway.StageOptions(stage_name=env_name),
            default_cors_preflight_options=apigateway.CorsOptions(
                allow_origins=apigateway.Cors.ALL_ORIGINS,
                allow_methods=apigateway.Cors.ALL_METHODS,
                allow_headers=["Content-Type", "Authorization", "X-Correlation-Id"],
            ),
        )

        self._add_proxy_resource("sprints", self.functions["sprints_fn"])
        self._add_proxy_resource("certification-groups", self.functions["certification_groups_fn"])
        self._add_proxy_resource("store", self.functions["store_fn"])

        # ====================================================================
        # Scheduled sprint status sync
        # ====================================================================

        self.sync_rule = events.Rule(
            self,
            "SyncSprintStatusesSchedule",
            rule_name=rn("awsug-sync-sprint-statuses"),
            schedule=events.Schedule.rate(SPRINT_STATUS_SYNC_RATE),
            targets=[targets.LambdaFunction(self.functions["sync_sprint_statuses_fn"])],
        )

        CfnOutput(self, "ApiUrl", value=self.api.url, description="Base URL of the REST API")
        for key, table in self.tables.items():
            CfnOutput(self, f"{table.node.id}Name", value=table.table_name, description=f"Name of {key}")

    def _add_proxy_resource(self, path_part: str, function: lambda_.IFunction) -> apigateway.Resource:
        """Route /{path_part} and everything below it to ``function``."""
        integration = apigateway.LambdaIntegration(function)
        resource = self.api.root.add_resource(path_part)
        resource.add_method("ANY", integration)
        resource.add_proxy(default_integration=integration, any_method=True)
        return resource
