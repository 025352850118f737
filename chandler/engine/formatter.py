"""Turn action outcomes into the assistant's reply."""

from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import Any

from chandler.actions.models import ActionResult
from chandler.errors import ChandlerError
from chandler.observability.logging import get_logger
from chandler.providers.llm.base import LLMMessage, LLMProvider, ProviderError
from chandler.providers.llm.prompts import TemplateLoader

logger = get_logger(__name__)

FALLBACK_REPLIES: dict[str, str] = {
    "search": "Tell me what kind of product you are looking for and I'll search the catalog.",
    "compare": "Tell me which products you'd like to compare.",
    "add_to_cart": "Which product would you like to add to your cart?",
    "get_details": "Which product would you like to know more about?",
    "checkout": "Your cart is ready when you are.",
    "ask_question": (
        "I can help you find products, compare them, manage your cart and check out. "
        "What are you looking for?"
    ),
}


@dataclass
class ActionOutcome:
    """Result of one executed action, successful or not."""

    action_id: str
    args: dict[str, Any]
    result: ActionResult | None = None
    error: ChandlerError | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def text(self) -> str | None:
        if self.error is not None or self.result is None:
            return None
        return self.result.message


class ResponseFormatter:
    """Builds reply text from action outcomes.

    The deterministic reply joins each action's message. With an LLM,
    the same facts are handed to the model, and the deterministic reply
    is used if the model fails.
    """

    def __init__(
        self,
        llm: LLMProvider | None = None,
        *,
        use_llm: bool = False,
        templates: TemplateLoader | None = None,
        chunk_size: int = 24,
    ) -> None:
        self._llm = llm
        self._use_llm = use_llm and llm is not None
        self._templates = templates or TemplateLoader()
        self._chunk_size = chunk_size

    def compose(self, outcomes: Sequence[ActionOutcome], intent: str | None) -> str:
        parts = [text for outcome in outcomes if (text := outcome.text)]
        if parts:
            return "\n\n".join(parts)
        if outcomes:
            # Failures were already reported as errors
            return ""
        return FALLBACK_REPLIES.get(intent or "ask_question", FALLBACK_REPLIES["ask_question"])

    async def format(
        self,
        message: str,
        outcomes: Sequence[ActionOutcome],
        *,
        intent: str | None,
        mode: str,
        thread_id: str,
    ) -> str:
        draft = self.compose(outcomes, intent)
        if not self._use_llm or (outcomes and not draft):
            return draft

        assert self._llm is not None
        prompt = self._templates.render(
            "response_generation.jinja2",
            message=message,
            mode=mode,
            facts=[text for outcome in outcomes if (text := outcome.text)],
        )
        fragments = []
        try:
            async for fragment in self._llm.generate_stream(
                [LLMMessage(role="user", content=prompt)],
                max_tokens=512,
                temperature=0.3,
            ):
                fragments.append(fragment)
        except ProviderError as e:
            logger.warning("formatter_llm_failed", thread_id=thread_id, error=str(e))
            return draft
        return "".join(fragments).strip() or draft

    def fragments(self, text: str) -> Iterator[str]:
        """Split text into fixed-size pieces for streaming."""
        for i in range(0, len(text), self._chunk_size):
            yield text[i : i + self._chunk_size]
