"""
Node API Endpoints.

Read-only view of the nodes reported by the collectors.
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query

from monitor_api.api.v1.common import http_error
from monitor_api.core.dependencies import CurrentUserDep, DbSessionDep
from monitor_api.core.exceptions import APIError
from monitor_api.core.responses import success
from monitor_api.schemas.node import NodeResponse, NodeStatsResponse
from monitor_api.services.node_service import NodeService

router = APIRouter(prefix="/nodes", tags=["Nodes"])


async def get_node_service(db: DbSessionDep) -> NodeService:
    """Get NodeService instance bound to the request session."""
    return NodeService(db)


NodeServiceDep = Annotated[NodeService, Depends(get_node_service)]


@router.get("")
async def list_nodes(
    service: NodeServiceDep,
    current_user: CurrentUserDep,
    status: Optional[str] = Query(None),
):
    """
    List nodes.

    - **status**: Only nodes reporting this status
    """
    try:
        nodes = await service.list_nodes(status)
    except APIError as e:
        raise http_error(e)
    return success([NodeResponse.model_validate(node) for node in nodes])


@router.get("/stats")
async def get_node_stats(service: NodeServiceDep, current_user: CurrentUserDep):
    try:
        stats = await service.get_node_stats()
    except APIError as e:
        raise http_error(e)
    return success(NodeStatsResponse(**stats))


@router.get("/{node_id}")
async def get_node(node_id: str, service: NodeServiceDep, current_user: CurrentUserDep):
    try:
        node = await service.get_node(node_id)
    except APIError as e:
        raise http_error(e, not_found="Node not found")
    return success(NodeResponse.model_validate(node))
