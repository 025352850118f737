"""Action catalog endpoints."""

from fastapi import APIRouter, Query

from chandler.actions.factory import CompiledTool
from chandler.actions.models import ActionCategory, ActionMode
from chandler.api.dependencies import RegistryDep
from chandler.api.exceptions import ActionNotFoundAPIError
from chandler.api.models.actions import ActionsResponse, ActionSummary
from chandler.observability.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/actions")


def _summary(tool: CompiledTool) -> ActionSummary:
    definition = tool.definition
    return ActionSummary(
        id=definition.id,
        name=definition.name,
        description=definition.description,
        category=definition.category.value,
        mode=definition.mode.value,
        requires_auth=definition.requires_auth,
        parameters=definition.parameters,
    )


@router.get("", response_model=ActionsResponse)
async def list_actions(
    registry: RegistryDep,
    mode: ActionMode | None = Query(default=None, description="Only actions available in this mode"),
    category: ActionCategory | None = Query(default=None),
) -> ActionsResponse:
    """List registered actions with cache statistics and performance metrics."""
    tools = registry.get_tools_by(
        category=category,
        mode=mode.value if mode is not None and mode != ActionMode.BOTH else None,
    )
    logger.debug("actions_listed", count=len(tools), mode=mode, category=category)
    return ActionsResponse(
        actions=[_summary(tool) for tool in tools],
        cache=registry.get_cache_stats(),
        metrics=registry.get_metrics(),
    )


@router.get("/{action_id}", response_model=ActionSummary)
async def get_action(action_id: str, registry: RegistryDep) -> ActionSummary:
    tool = registry.get_tool(action_id)
    if tool is None:
        raise ActionNotFoundAPIError(f"Action '{action_id}' not found")
    return _summary(tool)
