"""Main entry point for the parallel DynamoDB table purge."""

import argparse
import logging
import sys
from typing import List, Optional

from config import Config
from dynamodb_store import DynamoDBStore
from errors import InvalidConfigurationError, SchemaUnavailable
from metrics_collector import MetricsCollector
from models import PurgeState, PurgeSummary
from purge_orchestrator import PurgeOrchestrator


def setup_logging(config: Config):
    log_level = getattr(logging, config.log_level.upper(), logging.INFO)
    log_format = config.get(
        "logging.format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    logging.basicConfig(
        level=log_level, format=log_format, handlers=[logging.StreamHandler(sys.stdout)]
    )

    logging.getLogger("boto3").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Delete every item from a DynamoDB table using parallel scans"
    )
    parser.add_argument("--config", type=str, help="Path to a YAML configuration file")
    parser.add_argument("--table", type=str, help="DynamoDB table name")
    parser.add_argument("--region", type=str, help="AWS region")
    parser.add_argument("--profile", type=str, help="AWS profile")
    parser.add_argument(
        "--segments", type=int, help="Number of parallel segments (1-10, default: 4)"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="Report key schema and item estimate without deleting anything",
    )
    parser.add_argument(
        "--yes", action="store_true", help="Confirm that ALL data in the table may be deleted"
    )
    return parser.parse_args(argv)


def exit_code_for(summary: PurgeSummary) -> int:
    if summary.dry_run or summary.cancelled:
        return 0
    if summary.failed_segments or summary.unresolved_count:
        return 1
    return 0


def run_purge(config: Config, args: argparse.Namespace) -> int:
    logger = logging.getLogger(__name__)

    try:
        options = config.purge_options(
            table_name=args.table,
            total_segments=args.segments,
            dry_run=args.dry_run,
        )
    except InvalidConfigurationError as e:
        logger.error(f"Configuration error: {e.message}")
        return 1

    if not options.dry_run and not (args.yes or config.confirmed):
        logger.warning(
            f"Refusing to purge ALL data from table '{options.table_name}' without --yes"
        )
        logger.info("Purge cancelled. No data was deleted.")
        return 0

    region = args.region or config.region
    profile = args.profile or config.profile
    store = DynamoDBStore(region=region, profile=profile)
    orchestrator = PurgeOrchestrator(store, options)
    metrics = MetricsCollector(
        region=region, enable_cloudwatch=config.enable_cloudwatch, profile=profile
    )

    try:
        summary = orchestrator.run()
    except SchemaUnavailable as e:
        logger.error(f"Error: {e.message}")
        if e.error_code == "ResourceNotFoundException":
            logger.error("Table not found. Please check the table name and try again.")
        return 1
    except KeyboardInterrupt:
        if orchestrator.state in (PurgeState.IDLE, PurgeState.SCHEMA_RESOLVED):
            logger.info("Operation cancelled. No data was deleted.")
        else:
            logger.info("Operation cancelled.")
        return 0

    metrics.log_detailed_metrics(summary)
    if not summary.dry_run:
        metrics.publish_cloudwatch_metrics(summary, namespace=config.metrics_namespace)

    return exit_code_for(summary)


def main(argv: Optional[List[str]] = None):
    """Main entry point for command-line execution."""
    args = parse_args(argv)

    try:
        config = Config(args.config)
    except FileNotFoundError as e:
        logging.error(f"Configuration error: {e}")
        sys.exit(1)

    setup_logging(config)

    logger = logging.getLogger(__name__)
    logger.info("DynamoDB Table Purge Tool")

    sys.exit(run_purge(config, args))


if __name__ == "__main__":
    main()
