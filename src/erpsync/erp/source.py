"""
Remote source adapters: fetch the authoritative record set for one tenant.

The orchestrator only depends on the `RemoteSource` protocol, so tests and
other ERPs can plug in their own implementation.
"""
import logging
from typing import List, Protocol

from erpsync.erp.client import LOAD_RECORDS_SERVICE, ErpClient
from erpsync.erp.normalizer import ENTITY_DEFINITIONS, normalize_row, parse_entities
from erpsync.errors import AdapterFetchError
from erpsync.models.records import EntityType, RemoteRecord

logger = logging.getLogger(__name__)

# Hard stop so a gateway that always reports hasMoreResult cannot loop forever
MAX_PAGES = 1000


class RemoteSource(Protocol):
    async def fetch(self, tenant_id: int, entity_type: EntityType) -> List[RemoteRecord]:
        """Return the full remote snapshot. Raises AdapterFetchError."""
        ...


class ErpRemoteSource:
    """Reads snapshots page by page through the gateway's loadRecords service."""

    def __init__(self, client: ErpClient, page_size: int = 300):
        self.client = client
        self.page_size = page_size

    async def fetch(self, tenant_id: int, entity_type: EntityType) -> List[RemoteRecord]:
        definition = ENTITY_DEFINITIONS[entity_type]
        records: List[RemoteRecord] = []

        for page in range(MAX_PAGES):
            body = await self.client.call(
                LOAD_RECORDS_SERVICE,
                self._request_body(definition.root_entity, definition.field_list, page),
                tenant_id=tenant_id,
            )
            rows, has_more = parse_entities(body)
            for row in rows:
                record = normalize_row(entity_type, row)
                if record is not None:
                    records.append(record)
            if not has_more:
                break
        else:
            raise AdapterFetchError(
                f"ERP kept paging past {MAX_PAGES} pages for {definition.root_entity}"
            )

        logger.info(
            "Fetched %d %s records for tenant %s", len(records), entity_type.value, tenant_id
        )
        return records

    def _request_body(self, root_entity: str, field_list: str, page: int) -> dict:
        return {
            "dataSet": {
                "rootEntity": root_entity,
                "includePresentationFields": "N",
                "offsetPage": str(page),
                "pageSize": str(self.page_size),
                "entity": {"fieldset": {"list": field_list}},
            }
        }
