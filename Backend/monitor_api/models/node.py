"""
Node inventory model.

Rows are written by the collectors; this service only reads them.
"""

import enum

from sqlalchemy import Column, DateTime, Index, Integer, String
from sqlalchemy.sql import func

from monitor_api.core.database import Base


class NodeStatus(str, enum.Enum):
    """Node status values written by collectors and the stats aggregator."""

    ONLINE = "online"
    OFFLINE = "offline"
    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"


class Node(Base):
    """A host carrying Ascend NPU cards."""

    __tablename__ = "nodes"
    __table_args__ = (
        Index("ix_nodes_status", "status"),
    )

    node_id = Column(String(128), primary_key=True)
    host_id = Column(String(128))
    hostname = Column(String(255))
    ip_address = Column(String(64))
    npu_count = Column(Integer)
    status = Column(String(32))
    last_heartbeat = Column(DateTime(timezone=True))

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Node(node_id={self.node_id}, hostname={self.hostname}, status={self.status})>"
