"""Pytest configuration and shared fixtures."""

import pytest
import boto3
from moto import mock_aws
import json
import os
import sys
import threading
import zlib

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from errors import NonRetryableStoreError, SchemaUnavailable, Throttled
from models import KeyRole, KeySpec, ScanPage


class FakeStore:
    """In-memory store honouring the scan/delete contract of DynamoDBStore.

    Segment membership is a stable hash of the key, so for a fixed total
    every key lands in exactly one segment. Deletions never shift scan
    positions, mirroring how ExclusiveStartKey behaves.
    """

    def __init__(self, keys, key_schema=None):
        self.key_schema = key_schema or [KeySpec("pk", KeyRole.PARTITION)]
        self.keys = list(keys)
        self.present = {self._fingerprint(k) for k in self.keys}
        self.schema_error = None
        self.scan_errors = []
        self.unprocessed_plan = []
        self.throttle_plan = []
        self.poison_keys = set()
        self.before_delete = None

        self.lock = threading.Lock()
        self.scan_calls = []
        self.delete_calls = []
        self.scanned_keys = []

    @staticmethod
    def _fingerprint(key):
        return json.dumps(key, sort_keys=True)

    def segment_of(self, key, total_segments):
        return zlib.crc32(self._fingerprint(key).encode()) % total_segments

    @property
    def remaining(self):
        return len(self.present)

    def describe_key_schema(self, table_name):
        if self.schema_error:
            raise SchemaUnavailable(table_name, self.schema_error)
        return list(self.key_schema)

    def scan_partition(
        self, table_name, segment_id, total_segments, projected_attributes, cursor, page_limit
    ):
        with self.lock:
            self.scan_calls.append((segment_id, cursor))
            if self.scan_errors:
                error = self.scan_errors.pop(0)
                if error is not None:
                    raise error

            start = int(cursor["pos"]["N"]) + 1 if cursor else 0
            items, position = [], None
            for position in range(start, len(self.keys)):
                key = self.keys[position]
                if self.segment_of(key, total_segments) != segment_id:
                    continue
                if self._fingerprint(key) in self.present:
                    items.append({attr: key[attr] for attr in projected_attributes})
                if len(items) >= page_limit:
                    break
            else:
                position = None

            if position is None or position >= len(self.keys) - 1:
                next_cursor = None
            else:
                next_cursor = {"pos": {"N": str(position)}}
            self.scanned_keys.extend(items)
            return ScanPage(items=items, next_cursor=next_cursor)

    def batch_delete(self, table_name, keys):
        if self.before_delete:
            self.before_delete(keys)
        with self.lock:
            self.delete_calls.append(list(keys))
            if any(self._fingerprint(k) in self.poison_keys for k in keys):
                raise NonRetryableStoreError("BatchWriteItem", "validation failed")
            if self.throttle_plan and self.throttle_plan.pop(0):
                raise Throttled("BatchWriteItem")

            keep = self.unprocessed_plan.pop(0) if self.unprocessed_plan else 0
            keep = min(keep, len(keys))
            processed = keys[: len(keys) - keep]
            for key in processed:
                self.present.discard(self._fingerprint(key))
            return list(keys[len(keys) - keep :])

    def estimate_item_count(self, table_name):
        return len(self.present)

    def poison(self, key):
        self.poison_keys.add(self._fingerprint(key))


def make_keys(count, sort_key=False):
    keys = []
    for i in range(count):
        key = {"pk": {"S": f"item-{i:05d}"}}
        if sort_key:
            key["sk"] = {"N": str(i % 7)}
        keys.append(key)
    return keys


@pytest.fixture
def aws_credentials():
    """Mocked AWS Credentials for moto."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"


@pytest.fixture
def fake_store():
    """In-memory store holding 250 single-key items."""
    return FakeStore(make_keys(250))


@pytest.fixture
def fake_store_factory():
    def factory(count=0, sort_key=False):
        key_schema = [KeySpec("pk", KeyRole.PARTITION)]
        if sort_key:
            key_schema.append(KeySpec("sk", KeyRole.SORT))
        return FakeStore(make_keys(count, sort_key=sort_key), key_schema=key_schema)

    return factory


@pytest.fixture
def no_sleep():
    """Sleep replacement recording every requested delay."""
    delays = []

    def sleep(seconds):
        delays.append(seconds)

    sleep.delays = delays
    return sleep


@pytest.fixture
def mock_dynamodb_table(aws_credentials):
    """Create a mocked DynamoDB table with a composite key."""
    with mock_aws():
        dynamodb = boto3.resource("dynamodb", region_name="us-east-1")

        table = dynamodb.create_table(
            TableName="test-purge",
            KeySchema=[
                {"AttributeName": "pk", "KeyType": "HASH"},
                {"AttributeName": "sk", "KeyType": "RANGE"},
            ],
            AttributeDefinitions=[
                {"AttributeName": "pk", "AttributeType": "S"},
                {"AttributeName": "sk", "AttributeType": "N"},
            ],
            BillingMode="PAY_PER_REQUEST",
        )

        table.meta.client.get_waiter("table_exists").wait(TableName="test-purge")

        yield table


@pytest.fixture
def populated_dynamodb(mock_dynamodb_table):
    """Populate the mocked table with 120 items carrying a payload."""
    table = mock_dynamodb_table

    with table.batch_writer() as batch:
        for i in range(120):
            batch.put_item(
                Item={
                    "pk": f"user#{i % 40:03d}",
                    "sk": i,
                    "payload": f"sample-data-{i}" * 10,
                    "status": "active",
                }
            )

    return table


@pytest.fixture
def mock_config(tmp_path):
    """Create a mock configuration file."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()

    config_file = config_dir / "config.yaml"
    config_content = """
dynamodb:
  table_name: test-purge
  region: us-east-1

purge:
  total_segments: 3
  dry_run: false
  confirm: false
  page_size: 50
  batch_size: 20
  max_retries: 4
  backoff_base_seconds: 0.01
  backoff_cap_seconds: 0.05
  progress_interval_seconds: 0.5

metrics:
  enable_cloudwatch: false
  namespace: TestPurge

logging:
  level: DEBUG
  format: "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
"""

    config_file.write_text(config_content)
    return str(config_file)
