"""
Text-to-workflow compiler.

``compile_workflow`` is the deterministic pattern-based compiler and never
fails. ``WorkflowCompiler`` optionally asks a language model first and falls
back to the deterministic compiler when the model is unavailable, errors out,
or returns a graph that does not validate.
"""

from __future__ import annotations

import logging
import secrets
import time
from typing import Any, Dict, Optional

from ai_providers import AIProvider
from workflow_extractors import (
    extract_exit_targets,
    extract_notification_target,
    extract_price_conditions,
    extract_quote_sizing,
    extract_recurrence,
    extract_trades,
    resolve_asset,
)
from workflow_graph import StrategyIntent, synthesize_workflow
from workflow_prompts import WORKFLOW_GENERATION_PROMPT, WORKFLOW_SYSTEM_PROMPT
from workflow_schema import WorkflowValidationError, parse_workflow
from workflow_types import Workflow

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 50


def new_workflow_id() -> str:
    return f"wf-{int(time.time() * 1000)}-{secrets.token_hex(3)}"


def _workflow_name(text: str) -> str:
    return text.strip()[:MAX_NAME_LENGTH] or "Untitled workflow"


def extract_intent(text: str) -> StrategyIntent:
    exits = extract_exit_targets(text)
    notification = extract_notification_target(text)

    excluded = list(exits.spans)
    if notification is not None and notification.span is not None:
        excluded.append(notification.span)

    return StrategyIntent(
        asset=resolve_asset(text),
        trades=extract_trades(text),
        price_conditions=extract_price_conditions(text, excluded),
        exits=exits,
        quote=extract_quote_sizing(text),
        recurrence=extract_recurrence(text),
        notification=notification,
    )


def compile_workflow(text: str, workflow_id: Optional[str] = None) -> Workflow:
    """Compile free text into a workflow with at least a trigger, a trade and a notification."""
    text = text if isinstance(text, str) else ""
    return synthesize_workflow(
        extract_intent(text),
        workflow_id=workflow_id or new_workflow_id(),
        name=_workflow_name(text),
    )


class WorkflowCompiler:
    """Compiles strategy text, preferring the AI provider when one is configured."""

    def __init__(self, ai_provider: Optional[AIProvider] = None):
        self.ai_provider = ai_provider

    async def _compile_with_ai(self, text: str) -> Workflow:
        user_prompt = WORKFLOW_GENERATION_PROMPT.replace("{strategy_description}", text.strip())
        response = await self.ai_provider.generate_with_json(
            system_prompt=WORKFLOW_SYSTEM_PROMPT,
            user_prompt=user_prompt,
        )
        payload: Dict[str, Any] = dict(response.get("workflow", response))
        payload["id"] = new_workflow_id()
        payload.setdefault("name", _workflow_name(text))
        return parse_workflow(payload)

    async def compile(self, text: str) -> Dict[str, Any]:
        if self.ai_provider is not None and text.strip():
            try:
                workflow = await self._compile_with_ai(text)
                return {"workflow": workflow, "source": "ai"}
            except WorkflowValidationError as exc:
                logger.warning("AI workflow failed validation, falling back to local compiler: %s", exc)
            except Exception as exc:
                logger.warning("AI workflow compilation failed, falling back to local compiler: %s", exc)

        return {"workflow": compile_workflow(text), "source": "local"}
