"""
Runtime configuration API Endpoints.

Only the LLM block is exposed. Reads always mask the API key; writes are
applied immediately and persisted to the configuration document.
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from monitor_api.api.v1.common import http_error
from monitor_api.core.dependencies import CurrentUserDep
from monitor_api.core.exceptions import APIError
from monitor_api.core.responses import success
from monitor_api.schemas.config import LLMConfigResponse, LLMConfigUpdate
from monitor_api.services.llm_client import get_llm_client
from monitor_api.services.llm_config import LLMConfigStore, get_llm_config_store

router = APIRouter(prefix="/config", tags=["Config"])


async def get_config_store() -> LLMConfigStore:
    # The client subscribes to the store on creation
    get_llm_client()
    return get_llm_config_store()


ConfigStoreDep = Annotated[LLMConfigStore, Depends(get_config_store)]


@router.get("/llm")
async def get_llm_config(store: ConfigStoreDep, current_user: CurrentUserDep):
    config = await store.get()
    return success(LLMConfigResponse.model_validate(config.model_dump()))


@router.put("/llm")
async def update_llm_config(body: LLMConfigUpdate, store: ConfigStoreDep, current_user: CurrentUserDep):
    """
    Update the LLM block.

    Unset fields keep their value. An empty or masked ``api_key`` leaves the
    stored key unchanged.
    """
    try:
        config = await store.update(body)
    except APIError as e:
        raise http_error(e)
    return success(LLMConfigResponse.model_validate(config.model_dump()))
