"""Core adapter service: the boundary used by the transport layer."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from .errors import AdapterError, LoadError
from .logging import redact_payload
from .models import ApiResponse
from .runtime import AdapterRuntime

logger = logging.getLogger(__name__)


class AdapterService:
    """
    Presents the catalog, runs tools, and renders resources and prompts for
    a transport collaborator.

    Failures never cross this boundary as exceptions: every call returns a
    well-formed result, with ``is_error`` set when something went wrong.
    """

    def __init__(self, runtime: AdapterRuntime) -> None:
        self.runtime = runtime
        self.semaphore = asyncio.Semaphore(runtime.settings.adapter_max_concurrency)

    async def list_operations(self) -> List[Dict[str, Any]]:
        try:
            await self.runtime.catalog.ensure_loaded()
        except LoadError as exc:
            logger.error("Failed to list tools: %s", exc)
            return []
        return [
            {
                "name": operation.name,
                "description": operation.description,
                "inputSchema": operation.input_schema(),
            }
            for operation in self.runtime.catalog.list_operations()
        ]

    async def call_tool(
        self, name: str, arguments: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Execute one operation by name.

        Args:
            name: Operation name from the catalog
            arguments: Parameter values keyed by parameter name

        Returns:
            Tool result; ``is_error`` is true for load, lookup, validation
            and transport failures, never for an HTTP error status.
        """
        arguments = arguments or {}
        async with self.semaphore:
            logger.info("Executing tool=%s payload=%s", name, redact_payload(arguments))
            try:
                response = await self.runtime.executor.execute_by_name(name, arguments)
            except AdapterError as exc:
                logger.error("Tool execution failed: %s", exc)
                return self._format_error(f"Error executing {name}: {exc}")
            return self._format_result(response)

    async def read_resource(self, uri: str) -> Dict[str, Any]:
        try:
            content = await self.runtime.resources.read_resource(uri)
        except AdapterError as exc:
            logger.error("Failed to read resource %s: %s", uri, exc)
            return {"uri": uri, "mimeType": "text/plain", "text": str(exc), "is_error": True}
        return {**content, "is_error": False}

    def list_prompts(self) -> List[Dict[str, Any]]:
        return [prompt.to_dict() for prompt in self.runtime.prompts.list_prompts()]

    async def get_prompt(
        self, name: str, arguments: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        # prompts still render without a catalog, just without operation listings
        try:
            await self.runtime.catalog.ensure_loaded()
        except LoadError as exc:
            logger.warning("Rendering prompt %s without catalog: %s", name, exc)
        try:
            prompt = self.runtime.prompts.get_prompt(name, arguments)
        except AdapterError as exc:
            logger.error("Failed to get prompt %s: %s", name, exc)
            return {"description": str(exc), "messages": [], "is_error": True}
        return {**prompt, "is_error": False}

    def _format_result(self, response: ApiResponse) -> Dict[str, Any]:
        text = json.dumps(response.to_dict(), indent=2, default=str)
        return {"content": [{"type": "text", "text": text}], "is_error": False}

    def _format_error(self, message: str) -> Dict[str, Any]:
        return {"content": [{"type": "text", "text": message}], "is_error": True}
