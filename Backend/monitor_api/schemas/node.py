"""
Node schemas.
"""

from datetime import datetime
from typing import Optional

from monitor_api.schemas.common import CamelModel


class NodeResponse(CamelModel):
    node_id: str
    host_id: Optional[str] = None
    hostname: Optional[str] = None
    ip_address: Optional[str] = None
    npu_count: Optional[int] = None
    status: Optional[str] = None
    last_heartbeat: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class NodeStatsResponse(CamelModel):
    """Node counts by status family."""

    total: int = 0
    active: int = 0
    inactive: int = 0
    error: int = 0
