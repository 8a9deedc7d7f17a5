"""
Node persistence.
"""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from monitor_api.models.node import Node


class NodeRepository:
    """Read access to the ``nodes`` table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_id(self, node_id: str) -> Optional[Node]:
        result = await self.db.execute(select(Node).where(Node.node_id == node_id))
        return result.scalar_one_or_none()

    async def find_all(self) -> List[Node]:
        result = await self.db.execute(select(Node).order_by(Node.node_id))
        return list(result.scalars().all())

    async def find_by_status(self, status: str) -> List[Node]:
        result = await self.db.execute(
            select(Node).where(Node.status == status).order_by(Node.node_id)
        )
        return list(result.scalars().all())
