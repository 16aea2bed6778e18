"""Routing node: direct versus chunked execution."""

import structlog

from csm_pipeline.config.steps import SOURCE_TEXT
from csm_pipeline.extraction.chunker import estimate_tokens
from csm_pipeline.models import ExecutionPath
from csm_pipeline.pipeline.state import GraphState

logger = structlog.get_logger(__name__)


def route_node(state: GraphState) -> GraphState:
    """Choose the execution path from the document's estimated size.

    Args:
        state: Current graph state.

    Returns:
        State update with path and estimated_tokens.
    """
    ctx = state["run_context"]
    document = state["scope"].read(SOURCE_TEXT)
    estimated = estimate_tokens(document)

    chunked = ctx.config.chunking_enabled and ctx.chunker.needs_chunking(document, ctx.config.token_budget)
    path = ExecutionPath.CHUNKED if chunked else ExecutionPath.DIRECT

    logger.info(
        "route_selected",
        path=path.value,
        estimated_tokens=estimated,
        token_budget=ctx.config.token_budget,
        chunking_enabled=ctx.config.chunking_enabled,
    )

    return {"path": path.value, "estimated_tokens": estimated}


def select_path(state: GraphState) -> str:
    """Conditional edge: the path chosen by route_node."""
    return state["path"]


def should_continue(state: GraphState) -> str:
    """Conditional edge: 'abort' once a whole-set stage has failed.

    Args:
        state: Current graph state.

    Returns:
        'continue' or 'abort'.
    """
    if state.get("failed_stage"):
        logger.warning("pipeline_stopping_stage_failed", stage=state["failed_stage"])
        return "abort"
    return "continue"
