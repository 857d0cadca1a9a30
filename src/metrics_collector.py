"""Summary logging and CloudWatch publication for purge runs"""

import boto3
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from models import PurgeSummary


class MetricsCollector:
    def __init__(
        self,
        region: str = "us-east-1",
        enable_cloudwatch: bool = True,
        profile: Optional[str] = None,
    ):
        self.region = region
        self.enable_cloudwatch = enable_cloudwatch
        self.logger = logging.getLogger(__name__)

        if self.enable_cloudwatch:
            try:
                session = boto3.session.Session(profile_name=profile, region_name=region)
                self.cloudwatch = session.client("cloudwatch")
            except Exception as e:
                self.logger.warning(f"Failed to initialize CloudWatch client: {e}")
                self.enable_cloudwatch = False
                self.cloudwatch = None
        else:
            self.cloudwatch = None

    def build_metric_data(self, summary: PurgeSummary) -> List[Dict[str, Any]]:
        timestamp = datetime.now(timezone.utc)
        dimensions = [{"Name": "TableName", "Value": summary.table_name}]
        values = [
            ("ItemsScanned", summary.scanned, "Count"),
            ("ItemsDeleted", summary.deleted, "Count"),
            ("UnresolvedKeys", summary.unresolved_count, "Count"),
            ("FailedSegments", len(summary.failed_segments), "Count"),
            ("PurgeDuration", summary.elapsed_seconds, "Seconds"),
            ("DeleteRate", summary.average_rate, "Count/Second"),
        ]

        return [
            {
                "MetricName": name,
                "Dimensions": dimensions,
                "Value": value,
                "Unit": unit,
                "Timestamp": timestamp,
            }
            for name, value, unit in values
        ]

    def publish_cloudwatch_metrics(
        self, summary: PurgeSummary, namespace: str = "TablePurge"
    ):
        if not self.enable_cloudwatch or not self.cloudwatch:
            self.logger.debug("CloudWatch publishing disabled or unavailable")
            return

        try:
            metrics_data = self.build_metric_data(summary)

            for i in range(0, len(metrics_data), 20):
                batch = metrics_data[i : i + 20]
                self.cloudwatch.put_metric_data(Namespace=namespace, MetricData=batch)

            self.logger.info(
                f"Published {len(metrics_data)} metrics to CloudWatch namespace '{namespace}'"
            )

        except Exception as e:
            self.logger.error(f"Failed to publish CloudWatch metrics: {e}")

    def log_detailed_metrics(self, summary: PurgeSummary):
        self.logger.info("=" * 50)

        if summary.dry_run:
            estimate = summary.estimated_item_count
            self.logger.info("Dry run summary (no data was deleted):")
            self.logger.info(f"   Table: {summary.table_name}")
            self.logger.info(
                f"   Primary keys: {', '.join(str(k) for k in summary.key_schema)}"
            )
            self.logger.info(
                f"   Estimated items: {estimate:,}" if estimate is not None
                else "   Estimated items: unavailable"
            )
            self.logger.info("=" * 50)
            return

        if summary.cancelled:
            self.logger.info("Purge cancelled, partial results:")
        else:
            self.logger.info("Purge completed!")
        self.logger.info(f"   Total items scanned: {summary.scanned:,}")
        self.logger.info(f"   Total items deleted: {summary.deleted:,}")
        self.logger.info(f"   Total time: {summary.elapsed_seconds:.2f}s")
        self.logger.info(f"   Average rate: {summary.average_rate:.0f} items/sec")

        if summary.unresolved_count:
            self.logger.warning(f"   Keys left undeleted: {summary.unresolved_count:,}")
            for reason, count in sorted(summary.unresolved.items()):
                self.logger.warning(f"     {reason}: {count:,}")
        else:
            self.logger.info("   Keys left undeleted: 0")

        for segment in summary.failed_segments:
            self.logger.error(f"   Segment {segment.segment_id} failed: {segment.error}")

        self.logger.info("=" * 50)
