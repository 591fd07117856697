from typing import Callable, Dict

from aws_cdk import RemovalPolicy
from aws_cdk import aws_dynamodb as ddb
from constructs import Construct


def create_dynamodb_tables(stack: Construct, rn: Callable[[str], str], protect: bool = False) -> Dict[str, ddb.Table]:
    """Create all DynamoDB tables used by the application and return them in a dict.

    Every aggregate (sprint, group, store item, order) is a single item keyed
    by ``id``; users are keyed by ``userId``.

    Args:
        stack: CDK Construct (usually the Stack instance)
        rn: helper function to create resource names (rn(name: str) -> str)
        protect: Retain tables and enable deletion protection (production)

    Returns:
        Mapping of table names to Table constructs
    """
    removal_policy = RemovalPolicy.RETAIN if protect else RemovalPolicy.DESTROY

    def table(construct_id: str, name: str, partition_key: str = "id") -> ddb.Table:
        return ddb.Table(
            stack,
            construct_id,
            table_name=rn(name),
            partition_key=ddb.Attribute(name=partition_key, type=ddb.AttributeType.STRING),
            billing_mode=ddb.BillingMode.PAY_PER_REQUEST,
            point_in_time_recovery_specification=ddb.PointInTimeRecoverySpecification(
                point_in_time_recovery_enabled=True
            ),
            removal_policy=removal_policy,
            deletion_protection=protect,
        )

    sprints_table = table("SprintsTable", "awsug-sprints")

    certification_groups_table = table("CertificationGroupsTable", "awsug-certification-groups")
    certification_groups_table.add_global_secondary_index(
        index_name="level-index",
        partition_key=ddb.Attribute(name="level", type=ddb.AttributeType.STRING),
        projection_type=ddb.ProjectionType.ALL,
    )

    store_items_table = table("StoreItemsTable", "awsug-store-items")

    orders_table = table("OrdersTable", "awsug-orders")
    orders_table.add_global_secondary_index(
        index_name="userId-index",
        partition_key=ddb.Attribute(name="userId", type=ddb.AttributeType.STRING),
        projection_type=ddb.ProjectionType.ALL,
    )

    users_table = table("UsersTable", "awsug-users", partition_key="userId")

    return {
        "sprints_table": sprints_table,
        "certification_groups_table": certification_groups_table,
        "store_items_table": store_items_table,
        "orders_table": orders_table,
        "users_table": users_table,
    }
