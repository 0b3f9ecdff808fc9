"""CLI entry point for the OpenAPI adapter."""

from __future__ import annotations

import asyncio

import uvicorn

from .config import get_settings
from .logging import configure_logging
from .runtime import AdapterRuntime
from .server import build_server


async def _run() -> None:
    settings = get_settings()
    configure_logging(settings.adapter_log_level)

    async with AdapterRuntime(settings) as runtime:
        mcp, app, _ = await build_server(settings, runtime)
        transport = settings.adapter_transport.lower()

        if transport in {"http", "streamable-http", "streamablehttp", "sse"}:
            if not app:
                raise RuntimeError(f"HTTP app unavailable for transport={transport}")
            config = uvicorn.Config(app, host=settings.adapter_host, port=settings.adapter_port)
            server = uvicorn.Server(config)
            await server.serve()
            return
        await mcp.run_stdio_async()


def main() -> None:
    asyncio.run(_run())


if __name__ == "__main__":
    main()
