"""Request context models for middleware and observability."""

from pydantic import BaseModel, ConfigDict

from chandler.ratelimit.tiers import Tier


class CallerIdentity(BaseModel):
    """Who is calling, as derived from request headers.

    Authentication itself happens upstream; a customer id header marks
    the caller as authenticated.
    """

    identity: str
    """Rate limit key: the customer id, or the client address."""

    customer_id: str | None = None

    account_type: str | None = None

    authenticated: bool = False

    tier: Tier = "anonymous"

    model_config = ConfigDict(frozen=True)


class RequestContext(BaseModel):
    """Request context for observability and logging.

    Bound at the start of each request and used to correlate logs and
    traces across the request lifecycle.
    """

    trace_id: str
    """OpenTelemetry trace ID, or the request ID when tracing is off."""

    span_id: str

    request_id: str

    thread_id: str | None = None
    """Conversation thread, once known."""

    customer_id: str | None = None
