"""API request and response models."""

from chandler.api.models.actions import ActionSummary, ActionsResponse
from chandler.api.models.bulk import BulkOrderAccepted, BulkOrderCompleted
from chandler.api.models.chat import ChatContext, ChatRequest, ChatResponse
from chandler.api.models.context import CallerIdentity, RequestContext
from chandler.api.models.errors import ErrorBody, ErrorCode, ErrorDetail, ErrorResponse
from chandler.api.models.health import ComponentHealth, HealthResponse

__all__ = [
    "ActionSummary",
    "ActionsResponse",
    "BulkOrderAccepted",
    "BulkOrderCompleted",
    "CallerIdentity",
    "ChatContext",
    "ChatRequest",
    "ChatResponse",
    "ComponentHealth",
    "ErrorBody",
    "ErrorCode",
    "ErrorDetail",
    "ErrorResponse",
    "HealthResponse",
    "RequestContext",
]
