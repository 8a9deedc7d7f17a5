"""
Node Service Layer.

Read-only node inventory and status aggregation.
"""

from typing import Dict, List, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from monitor_api.core.exceptions import DatabaseError, NotFoundError
from monitor_api.models.node import Node, NodeStatus
from monitor_api.repositories import NodeRepository

logger = structlog.get_logger(__name__)

# Collectors report online/offline while older rows use active/inactive
ACTIVE_STATUSES = frozenset({NodeStatus.ONLINE.value, NodeStatus.ACTIVE.value})
INACTIVE_STATUSES = frozenset({NodeStatus.OFFLINE.value, NodeStatus.INACTIVE.value})


class NodeService:
    """Service for node queries."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.nodes = NodeRepository(db)

    async def list_nodes(self, status: Optional[str] = None) -> List[Node]:
        try:
            if status:
                return await self.nodes.find_by_status(status)
            return await self.nodes.find_all()
        except SQLAlchemyError as e:
            raise DatabaseError(str(e)) from e

    async def get_node(self, node_id: str) -> Node:
        try:
            node = await self.nodes.find_by_id(node_id)
        except SQLAlchemyError as e:
            raise DatabaseError(str(e)) from e
        if node is None:
            raise NotFoundError(f"Node {node_id} not found")
        return node

    async def get_node_stats(self) -> Dict[str, int]:
        """
        Count nodes by status family.

        ``active`` covers online/active, ``inactive`` covers offline/inactive;
        rows with any other status only count towards ``total``.
        """
        nodes = await self.list_nodes()
        stats = {"total": len(nodes), "active": 0, "inactive": 0, "error": 0}
        for node in nodes:
            if node.status in ACTIVE_STATUSES:
                stats["active"] += 1
            elif node.status in INACTIVE_STATUSES:
                stats["inactive"] += 1
            elif node.status == NodeStatus.ERROR.value:
                stats["error"] += 1
        return stats
