"""Primary-key schema resolution."""

import logging
from typing import Tuple

from errors import SchemaUnavailable
from models import KeyRole, KeySpec

logger = logging.getLogger(__name__)


class KeySchemaResolver:
    """Fetch the ordered primary-key attributes of a table."""

    def __init__(self, store):
        self.store = store

    def resolve(self, table_name: str) -> Tuple[KeySpec, ...]:
        logger.info(f"Analyzing table structure for {table_name}...")
        keys = list(self.store.describe_key_schema(table_name))

        if not keys:
            raise SchemaUnavailable(table_name, "table reported no key schema")

        # Partition key first so projections and key maps are stable
        keys.sort(key=lambda k: 0 if k.role == KeyRole.PARTITION else 1)

        logger.info(f"Primary keys: {', '.join(str(k) for k in keys)}")
        return tuple(keys)
