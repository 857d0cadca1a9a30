"""Tests for purge summary logging and CloudWatch publication."""

import logging
from unittest.mock import Mock

import boto3
from moto import mock_aws

from metrics_collector import MetricsCollector
from models import KeyRole, KeySpec, PurgeState, PurgeSummary, SegmentResult


def make_summary(**overrides):
    values = dict(
        table_name="orders",
        state=PurgeState.COMPLETED,
        key_schema=(KeySpec("pk", KeyRole.PARTITION),),
        scanned=1000,
        deleted=990,
        elapsed_seconds=10.0,
        unresolved={"retries_exhausted": 10},
        segments=[
            SegmentResult(segment_id=0, scanned=500, deleted=500),
            SegmentResult(segment_id=1, scanned=500, deleted=490, error="Scan failed: boom"),
        ],
    )
    values.update(overrides)
    return PurgeSummary(**values)


class TestMetricsCollector:
    def test_build_metric_data(self):
        collector = MetricsCollector(enable_cloudwatch=False)

        data = {m["MetricName"]: m for m in collector.build_metric_data(make_summary())}

        assert data["ItemsScanned"]["Value"] == 1000
        assert data["ItemsDeleted"]["Value"] == 990
        assert data["UnresolvedKeys"]["Value"] == 10
        assert data["FailedSegments"]["Value"] == 1
        assert data["DeleteRate"]["Value"] == 99.0
        assert data["PurgeDuration"]["Unit"] == "Seconds"
        assert data["ItemsDeleted"]["Dimensions"] == [{"Name": "TableName", "Value": "orders"}]

    def test_publish_disabled(self):
        collector = MetricsCollector(enable_cloudwatch=False)

        collector.publish_cloudwatch_metrics(make_summary())

        assert collector.cloudwatch is None

    @mock_aws
    def test_publish_to_cloudwatch(self, aws_credentials):
        collector = MetricsCollector(region="us-east-1", enable_cloudwatch=True)

        collector.publish_cloudwatch_metrics(make_summary(), namespace="TestPurge")

        cloudwatch = boto3.client("cloudwatch", region_name="us-east-1")
        names = {m["MetricName"] for m in cloudwatch.list_metrics(Namespace="TestPurge")["Metrics"]}
        assert {"ItemsScanned", "ItemsDeleted", "UnresolvedKeys"} <= names

    def test_publish_failure_is_logged(self, caplog):
        collector = MetricsCollector(enable_cloudwatch=False)
        collector.enable_cloudwatch = True
        collector.cloudwatch = Mock()
        collector.cloudwatch.put_metric_data.side_effect = RuntimeError("network down")

        with caplog.at_level(logging.ERROR):
            collector.publish_cloudwatch_metrics(make_summary())

        assert any("Failed to publish CloudWatch metrics" in r.message for r in caplog.records)

    def test_log_detailed_metrics_reports_unresolved(self, caplog):
        collector = MetricsCollector(enable_cloudwatch=False)

        with caplog.at_level(logging.INFO):
            collector.log_detailed_metrics(make_summary())

        text = "\n".join(r.message for r in caplog.records)
        assert "Total items deleted: 990" in text
        assert "Keys left undeleted: 10" in text
        assert "retries_exhausted: 10" in text
        assert "Segment 1 failed: Scan failed: boom" in text

    def test_log_detailed_metrics_dry_run(self, caplog):
        collector = MetricsCollector(enable_cloudwatch=False)
        summary = make_summary(
            state=PurgeState.DRY_RUN_REPORTED, dry_run=True, estimated_item_count=1234,
            scanned=0, deleted=0, unresolved={}, segments=[],
        )

        with caplog.at_level(logging.INFO):
            collector.log_detailed_metrics(summary)

        text = "\n".join(r.message for r in caplog.records)
        assert "no data was deleted" in text
        assert "Estimated items: 1,234" in text
        assert "pk (HASH)" in text

    def test_log_detailed_metrics_cancelled(self, caplog):
        collector = MetricsCollector(enable_cloudwatch=False)

        with caplog.at_level(logging.INFO):
            collector.log_detailed_metrics(make_summary(state=PurgeState.ABORTED))

        assert any("Purge cancelled" in r.message for r in caplog.records)
