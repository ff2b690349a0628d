"""
HTTP client for the external grading agent.

The agent is a separate service; this client only relays calls to it.
"""
from typing import Any, Optional

import httpx
import structlog

from partscout.core.config import Settings

logger = structlog.get_logger()


class AgentError(Exception):
    """Agent not configured or unreachable."""
    def __init__(self, message: str, code: str = None):
        self.message = message
        self.code = code
        super().__init__(message)


class AgentClient:
    """Relays health, trigger, grade, stop and stats calls to the agent."""

    def __init__(
        self,
        base_url: Optional[str],
        token: str = "",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 20.0,
    ):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.token = token
        self._timeout = timeout
        self._http_client = http_client
        self._owns_client = http_client is None

    @classmethod
    def from_settings(cls, settings: Settings) -> "AgentClient":
        return cls(
            base_url=settings.agent_url,
            token=settings.agent_token,
            timeout=settings.upstream_timeout_seconds,
        )

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
            self._owns_client = True
        return self._http_client

    async def close(self):
        if self._owns_client and self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json: Any = None,
    ) -> tuple[int, Any]:
        """
        Forward one call to the agent.

        Returns:
            ``(status_code, body)``; body is the decoded JSON, or
            ``{"raw": text}`` when the agent did not answer with JSON

        Raises:
            AgentError: agent not configured or unreachable
        """
        if not self.configured:
            raise AgentError("Agent URL not configured", code="NOT_CONFIGURED")

        headers = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        client = await self._get_http_client()
        try:
            response = await client.request(
                method,
                f"{self.base_url}{path}",
                params=params,
                json=json,
                headers=headers,
            )
        except httpx.HTTPError as e:
            logger.warning("Agent request failed", path=path, error=str(e))
            raise AgentError(f"Agent unreachable: {e}", code="UNREACHABLE") from e

        try:
            body = response.json()
        except ValueError:
            body = {"raw": response.text}
        return response.status_code, body

    async def health(self) -> tuple[int, Any]:
        return await self.request("GET", "/health")

    async def trigger(self, dry_run: bool = True) -> tuple[int, Any]:
        return await self.request("POST", "/trigger", params={"dry_run": str(dry_run).lower()})

    async def grade(self, payload: Any) -> tuple[int, Any]:
        return await self.request("POST", "/grade", json=payload)

    async def stop(self) -> tuple[int, Any]:
        return await self.request("POST", "/stop")

    async def stats(self) -> tuple[int, Any]:
        return await self.request("GET", "/stats")
