#!/usr/bin/env python3
"""
Create the billing-sync DynamoDB tables.

Table names come from the same environment variables the Lambdas read
(CUSTOMERS_TABLE, SUBSCRIPTIONS_TABLE, ...). Existing tables are left alone.

Usage:
    # Show the tables that would be created
    python scripts/create_tables.py --dry-run

    # Create them (optionally against DynamoDB Local)
    python scripts/create_tables.py --endpoint-url http://localhost:8000
"""

import argparse
import os
import sys

import boto3
from botocore.exceptions import ClientError

# Add functions directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../functions"))

from billing_sync.config import load_config
from billing_sync.entities import table_definitions


def create_tables(dynamodb_client, definitions: list[dict], dry_run: bool = False) -> list[str]:
    """Create each table that does not exist yet. Returns the names created."""
    created = []
    for definition in definitions:
        name = definition["TableName"]
        indexes = [gsi["IndexName"] for gsi in definition.get("GlobalSecondaryIndexes", [])]
        print(f"{name} (indexes: {', '.join(indexes) or 'none'})")

        if dry_run:
            continue

        try:
            dynamodb_client.create_table(**definition)
        except ClientError as e:
            if e.response["Error"]["Code"] == "ResourceInUseException":
                print("  Already exists, skipping")
                continue
            raise

        dynamodb_client.get_waiter("table_exists").wait(TableName=name)
        created.append(name)
        print("  Created")

    return created


def enable_event_ttl(dynamodb_client, table_name: str):
    """Expire webhook audit records via the ttl attribute."""
    dynamodb_client.update_time_to_live(
        TableName=table_name,
        TimeToLiveSpecification={"Enabled": True, "AttributeName": "ttl"},
    )
    print(f"Enabled TTL on {table_name}")


def main():
    parser = argparse.ArgumentParser(description="Create billing-sync DynamoDB tables")
    parser.add_argument("--dry-run", action="store_true", help="Only print the table layout")
    parser.add_argument("--endpoint-url", help="DynamoDB endpoint (e.g. DynamoDB Local)")
    parser.add_argument("--region", default=os.environ.get("AWS_DEFAULT_REGION", "us-east-1"))
    args = parser.parse_args()

    config = load_config()
    dynamodb_client = boto3.client("dynamodb", region_name=args.region, endpoint_url=args.endpoint_url)

    created = create_tables(dynamodb_client, table_definitions(config), dry_run=args.dry_run)
    if config.billing_events_table in created:
        enable_event_ttl(dynamodb_client, config.billing_events_table)

    print(f"\nDone: {len(created)} table(s) created")


if __name__ == "__main__":
    main()
