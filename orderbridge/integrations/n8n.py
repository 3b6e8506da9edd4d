"""
n8n Workflow Client - triggers order workflows through webhooks
"""
from typing import Any, Dict, Optional
import logging

import httpx

from .base import AdapterResult, HTTPAdapterMixin, WorkflowAdapter

logger = logging.getLogger(__name__)


class N8NClient(HTTPAdapterMixin, WorkflowAdapter):
    PROVIDER_NAME = "n8n"

    def __init__(self, url: str, api_key: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url.rstrip("/")
        self.api_key = api_key
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return self._make_client(
            base_url=self.url,
            headers={"X-N8N-API-KEY": self.api_key, "Content-Type": "application/json"},
        )

    async def test_connection(self) -> AdapterResult:
        result = await self._request("GET", "/api/v1/workflows", params={"limit": 1})
        if not result.success:
            return AdapterResult.fail(f"n8n connection failed: {result.error}")
        return AdapterResult.ok()

    async def trigger_workflow(self, workflow_id: str, payload: Dict[str, Any]) -> AdapterResult:
        # Production webhook path: <url>/webhook/<workflow id>
        return await self._request("POST", f"/webhook/{workflow_id}", json=payload)
