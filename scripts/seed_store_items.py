#!/usr/bin/env python3
"""
Seed the store items table with the initial catalogue.

Items whose name already exists in the table are skipped, so the script can
be re-run safely.

Usage:
    # Dry run (default)
    python -m scripts.seed_store_items --env dev

    # Actually write the items
    python -m scripts.seed_store_items --env dev --apply
"""

import argparse
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import boto3

from src.utils.ids import STORE_ITEM, generate_id

INITIAL_ITEMS: List[Dict[str, Any]] = [
    {
        "name": "AWS Credits $25",
        "description": "$25 AWS promotional credits for your cloud projects",
        "points": 1000,
        "image": "💳",
        "category": "cloud",
        "itemType": "virtual",
    },
    {
        "name": "Community T-Shirt",
        "description": "Exclusive community branded t-shirt",
        "points": 1500,
        "image": "👕",
        "category": "merchandise",
        "itemType": "physical",
    },
]


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Seed initial store items")
    parser.add_argument(
        "--env",
        choices=["dev", "prod"],
        default="dev",
        help="Environment to seed (default: dev)",
    )
    parser.add_argument(
        "--region-abbrev",
        default="ue1",
        help="Region abbreviation used in table names (default: ue1)",
    )
    parser.add_argument(
        "--table-name",
        help="Explicit table name (overrides --env and --region-abbrev)",
    )
    parser.add_argument(
        "--apply",
        action="store_true",
        help="Actually write the items (default is dry-run)",
    )
    return parser.parse_args(argv)


def build_seed_items(now: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Build store item documents for the initial catalogue.

    Virtual items start with no codes and are therefore out of stock until
    an admin adds codes.
    """
    timestamp = now or datetime.now(timezone.utc).isoformat()
    items = []
    for template in INITIAL_ITEMS:
        in_stock = template["itemType"] == "physical"
        items.append(
            {
                "id": generate_id(STORE_ITEM),
                **template,
                "availableCodes": [],
                "inStock": in_stock,
                "createdAt": timestamp,
                "updatedAt": timestamp,
                "version": 1,
            }
        )
    return items


def seed_store_items(table: Any, items: List[Dict[str, Any]], apply: bool) -> Dict[str, int]:
    """
    Write ``items`` that are not yet in ``table``.

    Returns:
        Counts of items created and skipped
    """
    existing = set()
    response = table.scan(ProjectionExpression="#name", ExpressionAttributeNames={"#name": "name"})
    existing.update(item.get("name") for item in response.get("Items", []))
    while "LastEvaluatedKey" in response:
        response = table.scan(
            ProjectionExpression="#name",
            ExpressionAttributeNames={"#name": "name"},
            ExclusiveStartKey=response["LastEvaluatedKey"],
        )
        existing.update(item.get("name") for item in response.get("Items", []))

    created = skipped = 0
    for item in items:
        if item["name"] in existing:
            print(f"  - Skipping {item['name']} (already exists)")
            skipped += 1
            continue

        if apply:
            table.put_item(Item=item, ConditionExpression="attribute_not_exists(id)")
            print(f"  ✓ Created: {item['name']} ({item['id']})")
        else:
            print(f"  [dry-run] Would create: {item['name']}")
        created += 1

    return {"created": created, "skipped": skipped}


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    table_name = args.table_name or f"awsug-store-items-{args.region_abbrev}-{args.env}"

    print(f"Seeding store items in {table_name}{'' if args.apply else ' (dry run)'}")

    table = boto3.resource("dynamodb").Table(table_name)
    result = seed_store_items(table, build_seed_items(), args.apply)

    verb = "created" if args.apply else "to create"
    print(f"\n✅ Seeding complete: {result['created']} {verb}, {result['skipped']} skipped")


if __name__ == "__main__":
    main()
