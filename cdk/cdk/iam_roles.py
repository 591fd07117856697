"""
IAM roles and policies for the CDK stack.

Creates:
- Lambda execution role with DynamoDB and SES permissions
"""

from typing import Callable, Dict

from aws_cdk import aws_dynamodb as dynamodb
from aws_cdk import aws_iam as iam
from constructs import Construct


def create_lambda_execution_role(
    stack: Construct,
    rn: Callable[[str], str],
    tables: Dict[str, dynamodb.ITable],
    sender_email: str,
) -> iam.Role:
    """Create the Lambda execution role with appropriate permissions.

    Args:
        stack: CDK Construct (usually the Stack instance)
        rn: helper function to create resource names
        tables: Dict of DynamoDB tables to grant access to
        sender_email: Verified SES identity the functions send from

    Returns:
        The Lambda execution role
    """
    # Lambda execution role (base permissions)
    lambda_execution_role = iam.Role(
        stack,
        "LambdaExecutionRole",
        role_name=rn("awsug-lambda-exec"),
        assumed_by=iam.ServicePrincipal("lambda.amazonaws.com"),
        managed_policies=[iam.ManagedPolicy.from_aws_managed_policy_name("service-role/AWSLambdaBasicExecutionRole")],
    )

    # Grant Lambda role access to all tables
    for table in tables.values():
        table.grant_read_write_data(lambda_execution_role)

        # Grant access to GSI indexes
        lambda_execution_role.add_to_policy(
            iam.PolicyStatement(
                actions=["dynamodb:Query", "dynamodb:Scan"],
                resources=[f"{table.table_arn}/index/*"],
            )
        )

    # Redemption and order emails
    lambda_execution_role.add_to_policy(
        iam.PolicyStatement(
            actions=["ses:SendEmail", "ses:SendRawEmail"],
            resources=["*"],
            conditions={"StringEquals": {"ses:FromAddress": sender_email}},
        )
    )

    return lambda_execution_role
