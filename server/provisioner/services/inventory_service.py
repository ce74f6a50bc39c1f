"""Node, OBM and catalog inventory held in memory."""
import asyncio
import logging
from typing import Dict, List, Optional

from ..core.models import CatalogEntry, Node, ObmSetting

logger = logging.getLogger(__name__)


class InventoryService:
    """Stores nodes with their OBM settings and collected catalogs."""

    def __init__(self):
        self.nodes: Dict[str, Node] = {}
        self.catalogs: List[CatalogEntry] = []
        self._lock = asyncio.Lock()

    async def upsert_node(self, node: Node) -> Node:
        async with self._lock:
            self.nodes[node.id] = node
        logger.info("Registered node %s (%d OBM settings)", node.id, len(node.obm_settings))
        return node

    async def find_node_by_identifier(self, identifier: str) -> Optional[Node]:
        """Look a node up by id, falling back to its name."""
        async with self._lock:
            node = self.nodes.get(identifier)
            if node is not None:
                return node
            for candidate in self.nodes.values():
                if candidate.name and candidate.name == identifier:
                    return candidate
        return None

    async def find_obm_by_node(self, node_id: str, service: str) -> Optional[ObmSetting]:
        node = await self.find_node_by_identifier(node_id)
        if node is None:
            return None
        for setting in node.obm_settings:
            if setting.service == service:
                return setting
        return None

    async def create_catalog(self, entry: CatalogEntry) -> CatalogEntry:
        async with self._lock:
            self.catalogs.append(entry)
        logger.debug("Stored catalog %s for node %s", entry.source, entry.node)
        return entry

    async def find_catalogs_by_node(
        self, node_id: str, source: Optional[str] = None
    ) -> List[CatalogEntry]:
        async with self._lock:
            return [
                entry
                for entry in self.catalogs
                if entry.node == node_id and (source is None or entry.source == source)
            ]


inventory_service = InventoryService()
