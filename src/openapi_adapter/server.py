"""MCP server setup for the OpenAPI adapter."""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from fastmcp import FastMCP
from fastmcp.exceptions import PromptError, ResourceError
from pydantic import BaseModel, ConfigDict, Field, create_model

from .config import Settings
from .errors import LoadError
from .models import Operation, Parameter
from .prompts import API_DOCUMENTATION, API_EXPLORER, GENERATE_CLIENT, PROMPTS, TEST_SCENARIO
from .resources import RESOURCES, Resource
from .runtime import AdapterRuntime
from .service import AdapterService

logger = logging.getLogger(__name__)


async def build_server(
    settings: Settings, runtime: Optional[AdapterRuntime] = None
) -> Tuple[FastMCP, Optional[object], AdapterService]:
    runtime = runtime or AdapterRuntime(settings)
    service = AdapterService(runtime)

    mcp = FastMCP(settings.service_name, instructions=_instructions())
    app = _get_http_app(mcp, settings)
    _attach_auth(app, settings)
    _attach_healthcheck(app)

    try:
        await runtime.catalog.ensure_loaded()
    except LoadError as exc:
        logger.error("Failed to pre-load OpenAPI spec: %s", exc)

    for operation in runtime.catalog.list_operations():
        handler = _tool_handler(service, operation)
        mcp.tool(name=operation.name, description=operation.description)(handler)
        logger.info("Registered tool: %s", operation.name)

    for resource in RESOURCES:
        mcp.resource(
            resource.uri,
            name=resource.name,
            description=resource.description,
            mime_type=resource.mime_type,
        )(_resource_reader(service, resource))

    _register_prompts(mcp, service)

    return mcp, app, service


def build_input_model(operation: Operation) -> type[BaseModel]:
    """Pydantic model advertising the operation's parameters to callers.

    Every field is optional and untyped at this layer so that missing
    arguments reach the executor, which reports all of them at once, and
    values reach its validator exactly as the caller sent them.
    """
    fields: Dict[str, Tuple[Any, Any]] = {}
    for index, parameter in enumerate(operation.parameters):
        field_name = _field_name(parameter.name, index)
        fields[field_name] = (
            Any,
            Field(
                None,
                alias=parameter.name,
                description=parameter.description,
                json_schema_extra=_field_schema(parameter),
            ),
        )

    model_config = ConfigDict(
        extra="allow",
        populate_by_name=True,
        json_schema_extra={"required": operation.required_names()},
    )
    model_name = f"{_sanitize_name(operation.name)}Input"
    return create_model(model_name, __config__=model_config, **fields)


def _tool_handler(
    service: AdapterService, operation: Operation
) -> Callable[[Any], Awaitable[Dict[str, Any]]]:
    input_model = build_input_model(operation)

    async def handler(payload: input_model) -> Dict[str, Any]:  # type: ignore[valid-type]
        arguments = payload.model_dump(by_alias=True, exclude_unset=True)
        return await service.call_tool(operation.name, arguments)

    handler.__name__ = _sanitize_name(operation.name)
    return handler


def _resource_reader(service: AdapterService, resource: Resource) -> Callable[[], Awaitable[str]]:
    async def reader() -> str:
        content = await service.read_resource(resource.uri)
        if content["is_error"]:
            raise ResourceError(content["text"])
        return content["text"]

    reader.__name__ = _sanitize_name(resource.uri)
    return reader


def _register_prompts(mcp: FastMCP, service: AdapterService) -> None:
    async def explorer_prompt(endpoint: Optional[str] = None) -> List[Dict[str, Any]]:
        return await _render_prompt(service, API_EXPLORER, endpoint=endpoint)

    async def client_prompt(language: str, operation: Optional[str] = None) -> List[Dict[str, Any]]:
        return await _render_prompt(service, GENERATE_CLIENT, language=language, operation=operation)

    async def scenario_prompt(scenario: str) -> List[Dict[str, Any]]:
        return await _render_prompt(service, TEST_SCENARIO, scenario=scenario)

    async def documentation_prompt(
        format: Optional[str] = None, endpoint: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        return await _render_prompt(service, API_DOCUMENTATION, format=format, endpoint=endpoint)

    renderers = {
        API_EXPLORER: explorer_prompt,
        GENERATE_CLIENT: client_prompt,
        TEST_SCENARIO: scenario_prompt,
        API_DOCUMENTATION: documentation_prompt,
    }
    for prompt in PROMPTS:
        mcp.prompt(name=prompt.name, description=prompt.description)(renderers[prompt.name])


async def _render_prompt(service: AdapterService, name: str, **arguments: Any) -> List[Dict[str, Any]]:
    supplied = {key: value for key, value in arguments.items() if value is not None}
    result = await service.get_prompt(name, supplied)
    if result["is_error"]:
        raise PromptError(result["description"])
    return result["messages"]


def _field_schema(parameter: Parameter) -> Dict[str, Any]:
    # advertised only; values pass through uncoerced to the executor's validator
    schema: Dict[str, Any] = {"type": parameter.declared_type}
    for key in ("enum", "format"):
        if key in parameter.raw_schema:
            schema[key] = parameter.raw_schema[key]
    return schema


def _field_name(name: str, index: int) -> str:
    sanitized = _sanitize_name(name).lstrip("_") or "param"
    if sanitized[0].isdigit() or sanitized.startswith("model_"):
        sanitized = f"p_{sanitized}"
    return f"{sanitized}_{index}"


def _sanitize_name(name: str) -> str:
    return "".join(ch if ch.isalnum() else "_" for ch in name)


def _attach_auth(app, settings: Settings) -> None:  # type: ignore[no-untyped-def]
    if not app:
        logger.warning("FastMCP app not available; auth middleware disabled")
        return

    @app.middleware("http")
    async def auth_middleware(request, call_next):  # type: ignore[no-untyped-def]
        if request.method == "OPTIONS" or request.url.path.endswith("/health"):
            return await call_next(request)
        if not settings.adapter_auth_token:
            return await call_next(request)

        auth_header = request.headers.get("authorization", "")
        token = auth_header.replace("Bearer", "").strip()
        if token == settings.adapter_auth_token:
            return await call_next(request)

        from starlette.responses import JSONResponse

        return JSONResponse({"error": "Unauthorized"}, status_code=401)


def _attach_healthcheck(app) -> None:  # type: ignore[no-untyped-def]
    if not app:
        return

    async def healthcheck(_request):  # type: ignore[no-untyped-def]
        from starlette.responses import JSONResponse

        return JSONResponse({"status": "ok"})

    app.add_route("/health", healthcheck, methods=["GET"])


def _instructions() -> str:
    return (
        "OpenAPI adapter. Each tool is one operation of the configured REST API; "
        "arguments are validated against the API description before any request is sent."
    )


def _get_http_app(mcp: FastMCP, settings: Settings):  # type: ignore[no-untyped-def]
    transport = settings.adapter_transport.lower()
    if transport == "http":
        app = mcp.http_app(transport="http", stateless_http=True, json_response=True)
    elif transport in {"streamable-http", "streamablehttp"}:
        app = mcp.http_app(transport="streamable-http", stateless_http=True, json_response=True)
    elif transport == "sse":
        app = mcp.http_app(transport="sse")
    else:
        return None
    _attach_cors(app)
    return app


def _attach_cors(app) -> None:  # type: ignore[no-untyped-def]
    from starlette.middleware.cors import CORSMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
