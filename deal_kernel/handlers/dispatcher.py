"""
Action Dispatcher — the single boundary between callers and handlers.

Behavioral Contract:
- Every call returns a well-formed ActionHandlerResult; nothing raises past here
- Unknown action ids fail with "Unknown action: <id>"
- A handler that raises becomes a failure carrying the exception message
"""

import structlog

from deal_kernel.handlers.actions import HANDLER_REGISTRY
from deal_kernel.models.actions import (
    ActionErrorKind,
    ActionFailure,
    ActionHandlerInput,
    ActionHandlerResult,
    HandlerContext,
)

logger = structlog.get_logger()

GENERIC_HANDLER_ERROR = "Handler execution failed"


def has_handler(action_id: str) -> bool:
    return str(getattr(action_id, "value", action_id)) in HANDLER_REGISTRY


def execute_action(input: ActionHandlerInput, context: HandlerContext) -> ActionHandlerResult:
    """Route an invocation to its handler and normalize the outcome."""
    log = logger.bind(action_id=input.action_id, deal_id=input.deal_id)

    handler = HANDLER_REGISTRY.get(input.action_id)
    if handler is None:
        log.warning("action_unknown")
        return ActionFailure(
            error=f"Unknown action: {input.action_id}",
            error_kind=ActionErrorKind.DISPATCH,
        )

    try:
        result = handler(input, context)
    except Exception as e:
        log.exception("action_handler_raised")
        return ActionFailure(
            error=str(e) or GENERIC_HANDLER_ERROR,
            error_kind=ActionErrorKind.HANDLER,
        )

    if isinstance(result, ActionFailure):
        log.info("action_failed", error=result.error, error_kind=result.error_kind.value)
    else:
        log.info("action_executed", result_kind=result.kind)
    return result
