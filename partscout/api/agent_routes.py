"""
Proxy routes for the external grading agent.
"""
from typing import Any, Awaitable

import structlog
from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse

from partscout.api.dependencies import get_agent_client
from partscout.services.agent_client import AgentClient, AgentError

logger = structlog.get_logger()

router = APIRouter(prefix="/api/agent", tags=["agent"])


async def _relay(call: Awaitable[tuple[int, Any]]) -> JSONResponse:
    try:
        status_code, body = await call
    except AgentError as e:
        status_code = 503 if e.code == "NOT_CONFIGURED" else 502
        return JSONResponse(status_code=status_code, content={"error": e.message})
    return JSONResponse(status_code=status_code, content=body)


@router.get("/health")
async def agent_health(agent: AgentClient = Depends(get_agent_client)):
    """Agent liveness, as reported by the agent."""
    return await _relay(agent.health())


@router.post("/trigger")
async def agent_trigger(
    dry_run: bool = Query(True, description="Run without calling the model"),
    agent: AgentClient = Depends(get_agent_client),
):
    """Start an agent run."""
    logger.info("Agent run requested", dry_run=dry_run)
    return await _relay(agent.trigger(dry_run=dry_run))


@router.post("/grade")
async def agent_grade(
    payload: dict[str, Any] = Body(...),
    agent: AgentClient = Depends(get_agent_client),
):
    """Grade listings with the agent."""
    return await _relay(agent.grade(payload))


@router.post("/stop")
async def agent_stop(agent: AgentClient = Depends(get_agent_client)):
    return await _relay(agent.stop())


@router.get("/stats")
async def agent_stats(agent: AgentClient = Depends(get_agent_client)):
    return await _relay(agent.stats())
