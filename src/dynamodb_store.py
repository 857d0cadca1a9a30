"""DynamoDB adapter exposing the operations the purge engine consumes."""

import boto3
import logging
from typing import Any, List, Optional, Sequence
from botocore.exceptions import BotoCoreError, ClientError

from errors import SchemaUnavailable, classify_client_error, get_error_code
from models import ItemKey, KeyRole, KeySpec, ScanPage

logger = logging.getLogger(__name__)


class DynamoDBStore:
    """Thin wrapper over the low-level DynamoDB client.

    Every botocore failure leaving this class is translated into one of the
    typed errors in ``errors``; callers never inspect AWS error codes.
    """

    def __init__(
        self,
        region: Optional[str] = None,
        profile: Optional[str] = None,
        client: Any = None,
    ):
        self.region = region
        self.profile = profile
        if client is None:
            session = boto3.session.Session(profile_name=profile, region_name=region)
            client = session.client("dynamodb")
        self.client = client
        self._descriptions = {}

    def describe_key_schema(self, table_name: str) -> List[KeySpec]:
        try:
            response = self.client.describe_table(TableName=table_name)
            self._descriptions[table_name] = response
        except ClientError as e:
            code = get_error_code(e)
            if code == "ResourceNotFoundException":
                raise SchemaUnavailable(table_name, "table not found", error_code=code) from e
            raise SchemaUnavailable(table_name, str(e), error_code=code) from e
        except BotoCoreError as e:
            raise SchemaUnavailable(table_name, str(e)) from e

        key_schema = response.get("Table", {}).get("KeySchema") or []
        if not key_schema:
            raise SchemaUnavailable(table_name, "table reported no key schema")

        return [
            KeySpec(attribute_name=key["AttributeName"], role=KeyRole(key["KeyType"]))
            for key in key_schema
        ]

    def scan_partition(
        self,
        table_name: str,
        segment_id: int,
        total_segments: int,
        projected_attributes: Sequence[str],
        cursor: Optional[ItemKey],
        page_limit: int,
    ) -> ScanPage:
        names = {f"#k{i}": attr for i, attr in enumerate(projected_attributes)}
        scan_params = {
            "TableName": table_name,
            "Segment": segment_id,
            "TotalSegments": total_segments,
            "ProjectionExpression": ", ".join(names),
            "ExpressionAttributeNames": names,
            "Limit": page_limit,
        }
        if cursor:
            scan_params["ExclusiveStartKey"] = cursor

        try:
            response = self.client.scan(**scan_params)
        except (ClientError, BotoCoreError) as e:
            raise classify_client_error(e, "Scan") from e

        return ScanPage(
            items=response.get("Items", []),
            next_cursor=response.get("LastEvaluatedKey"),
        )

    def batch_delete(self, table_name: str, keys: Sequence[ItemKey]) -> List[ItemKey]:
        """Delete ``keys`` and return the subset the store did not process."""
        request_items = {
            table_name: [{"DeleteRequest": {"Key": key}} for key in keys]
        }

        try:
            response = self.client.batch_write_item(RequestItems=request_items)
        except (ClientError, BotoCoreError) as e:
            raise classify_client_error(e, "BatchWriteItem") from e

        unprocessed = response.get("UnprocessedItems", {}).get(table_name, [])
        return [request["DeleteRequest"]["Key"] for request in unprocessed]

    def estimate_item_count(self, table_name: str) -> Optional[int]:
        # ItemCount lags the live table by up to six hours; reuse the
        # description fetched with the key schema when there is one
        try:
            response = self._descriptions.get(table_name)
            if response is None:
                response = self.client.describe_table(TableName=table_name)
            item_count = response["Table"]["ItemCount"]
            logger.info(f"Table {table_name} has ~{item_count} items")
            return item_count

        except (ClientError, BotoCoreError, KeyError) as e:
            logger.warning(f"Could not estimate item count: {str(e)}")
            return None
