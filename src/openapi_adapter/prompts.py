"""Prompt templates built from the loaded catalog."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .errors import PromptNotFoundError
from .models import Operation
from .openapi import OpenAPICatalog


API_EXPLORER = "api-explorer"
GENERATE_CLIENT = "generate-client"
TEST_SCENARIO = "test-scenario"
API_DOCUMENTATION = "api-documentation"


@dataclass(frozen=True)
class PromptArgument:
    name: str
    description: str
    required: bool = False


@dataclass(frozen=True)
class Prompt:
    name: str
    description: str
    arguments: Tuple[PromptArgument, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "arguments": [
                {"name": a.name, "description": a.description, "required": a.required}
                for a in self.arguments
            ],
        }


PROMPTS = (
    Prompt(
        API_EXPLORER,
        "Explore and test API endpoints interactively",
        (PromptArgument("endpoint", "The API endpoint to explore (e.g., /pet, /store/order)"),),
    ),
    Prompt(
        GENERATE_CLIENT,
        "Generate code to interact with the API",
        (
            PromptArgument(
                "language", "Programming language (e.g., javascript, python, java, typescript)", True
            ),
            PromptArgument("operation", "Specific operation to generate code for"),
        ),
    ),
    Prompt(
        TEST_SCENARIO,
        "Create and execute test scenarios for the API",
        (
            PromptArgument(
                "scenario", "Type of scenario (e.g., crud-operations, error-handling, performance)", True
            ),
        ),
    ),
    Prompt(
        API_DOCUMENTATION,
        "Generate human-readable documentation for API endpoints",
        (
            PromptArgument("format", "Documentation format (e.g., markdown, html, plain)"),
            PromptArgument("endpoint", "Specific endpoint to document (optional)"),
        ),
    ),
)

_SCENARIOS = {
    "crud-operations": (
        "Create a comprehensive test scenario for CRUD operations on the {api}:\n"
        "1. Create a new resource with all required fields\n"
        "2. Retrieve the created resource by ID\n"
        "3. Update the resource\n"
        "4. List resources with a filter\n"
        "5. Delete the resource\n"
        "6. Verify the resource was deleted\n\n"
        "For each step, show the request, expected response, and any assertions "
        "to validate the operation."
    ),
    "error-handling": (
        "Create test scenarios to verify error handling in the {api}:\n"
        "1. Test invalid input data (missing required fields, wrong data types)\n"
        "2. Test non-existent resource access (404 errors)\n"
        "3. Test invalid HTTP methods\n"
        "4. Test malformed requests\n"
        "5. Test boundary conditions (very long strings, negative numbers, etc.)\n\n"
        "Show how the API handles each error case and what clients should expect."
    ),
    "performance": (
        "Create performance test scenarios for the {api}:\n"
        "1. Test response times for different endpoints\n"
        "2. Test handling of large payloads\n"
        "3. Test pagination with large datasets\n"
        "4. Test concurrent requests\n"
        "5. Identify potential bottlenecks\n\n"
        "Provide recommendations for optimal API usage patterns."
    ),
}
DEFAULT_SCENARIO = "crud-operations"


class PromptHandler:
    """Renders prompt templates against the catalog's current state.

    Arguments are optional in practice: a missing ``language`` falls back to
    javascript, a missing or unknown ``scenario`` to crud-operations. Known
    endpoints and operations are expanded into the operations they name.
    """

    def __init__(self, catalog: OpenAPICatalog) -> None:
        self.catalog = catalog

    def list_prompts(self) -> List[Prompt]:
        return list(PROMPTS)

    def get_prompt(
        self, name: str, arguments: Optional[Mapping[str, Any]] = None
    ) -> Dict[str, Any]:
        args = dict(arguments or {})
        if name == API_EXPLORER:
            return _render("Interactive API exploration", self._explorer(args.get("endpoint")))
        if name == GENERATE_CLIENT:
            text = self._client(args.get("language") or "javascript", args.get("operation"))
            return _render("Generate API client code", text)
        if name == TEST_SCENARIO:
            template = _SCENARIOS.get(args.get("scenario") or "", _SCENARIOS[DEFAULT_SCENARIO])
            return _render("Create and execute test scenarios", template.format(api=self.api_name))
        if name == API_DOCUMENTATION:
            text = self._documentation(args.get("format") or "markdown", args.get("endpoint"))
            return _render("Generate API documentation", text)
        raise PromptNotFoundError(name)

    @property
    def api_name(self) -> str:
        document = self.catalog.document
        title = None
        if document is not None:
            title = (document.get("info") or {}).get("title")
        return f"{title} API" if title else "API"

    def operations_for(self, endpoint: str) -> List[Operation]:
        prefix = endpoint.rstrip("/")
        return [
            op
            for op in self.catalog.list_operations()
            if op.path == prefix or op.path.startswith(prefix + "/")
        ]

    def _explorer(self, endpoint: Optional[str]) -> str:
        if not endpoint:
            return (
                f"Help me explore the {self.api_name}. Please:\n"
                "1. Show me the main categories of endpoints available\n"
                "2. List the most commonly used operations\n"
                "3. Guide me through making my first API request\n"
                "4. Explain how to handle authentication if required\n\n"
                f"{_operation_lines(self.catalog.list_operations())}"
                "What would you like to explore first?"
            )
        return (
            f"Help me explore and test the {endpoint} endpoint. Show me:\n"
            "1. What operations are available for this endpoint\n"
            "2. What parameters each operation requires\n"
            "3. Example requests and expected responses\n"
            "4. Help me make test requests with sample data\n\n"
            f"{_operation_lines(self.operations_for(endpoint))}"
            f"Let's start by listing the available operations for {endpoint}."
        )

    def _client(self, language: str, operation_name: Optional[str]) -> str:
        if not operation_name:
            return (
                f"Generate a complete {language} client library for the {self.api_name}. Include:\n"
                "1. A main client class with methods for all available operations\n"
                "2. Proper error handling and retry logic\n"
                "3. Type definitions (if applicable)\n"
                "4. Configuration options (base URL, timeout, etc.)\n"
                "5. Comprehensive example usage\n"
                "6. Installation instructions if any dependencies are needed\n\n"
                f"{_operation_lines(self.catalog.list_operations())}"
                f"Make it production-ready and follow {language} best practices."
            )
        operation = self.catalog.get_operation(operation_name)
        detail = ""
        if operation is not None:
            params = ", ".join(
                f"{p.name} ({p.location}, {p.declared_type}{', required' if p.required else ''})"
                for p in operation.parameters
            )
            detail = (
                f"The operation is {operation.method.upper()} {operation.path}"
                f" with parameters: {params or 'none'}.\n\n"
            )
        return (
            f"Generate {language} code to call the {operation_name} operation from the "
            f"{self.api_name}. Please include:\n"
            "1. Proper error handling\n"
            "2. Type definitions (if applicable for the language)\n"
            "3. Example usage with sample data\n"
            "4. Any necessary imports or dependencies\n"
            "5. Comments explaining the code\n\n"
            f"{detail}"
            f"Make the code production-ready and follow best practices for {language}."
        )

    def _documentation(self, fmt: str, endpoint: Optional[str]) -> str:
        if endpoint:
            return (
                f"Generate {fmt} documentation for the {endpoint} endpoint. Include:\n"
                "1. Endpoint description and purpose\n"
                "2. HTTP method(s) supported\n"
                "3. Request parameters (path, query, headers, body)\n"
                "4. Request/response examples\n"
                "5. Error codes and their meanings\n"
                "6. Usage notes and best practices\n\n"
                f"{_operation_lines(self.operations_for(endpoint))}"
                "Make it clear and developer-friendly."
            )
        return (
            f"Generate comprehensive {fmt} documentation for the entire {self.api_name}. "
            "Structure it with:\n"
            "1. API Overview and base URL\n"
            "2. Authentication (if applicable)\n"
            "3. Common headers and conventions\n"
            "4. Endpoints grouped by resource type\n"
            "5. Detailed documentation for each endpoint\n"
            "6. Data models and schemas\n"
            "7. Error handling guide\n"
            "8. Example workflows\n"
            "9. Rate limiting and best practices\n\n"
            f"{_operation_lines(self.catalog.list_operations())}"
            "Make it suitable for developers who are new to the API."
        )


def _operation_lines(operations: List[Operation]) -> str:
    if not operations:
        return ""
    lines = sorted(f"- {op.name}: {op.method.upper()} {op.path}" for op in operations)
    return "Available operations:\n" + "\n".join(lines) + "\n\n"


def _render(description: str, text: str) -> Dict[str, Any]:
    return {
        "description": description,
        "messages": [{"role": "user", "content": {"type": "text", "text": text}}],
    }
