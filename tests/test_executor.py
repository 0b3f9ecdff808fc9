"""
Unit tests for the operation executor.
"""

import json

import httpx
import pytest

from conftest import API_BASE, MockBackend, Stack
from openapi_adapter.errors import (
    ExecutionError,
    PathSubstitutionError,
    ToolNotFoundError,
    ValidationError,
)
from openapi_adapter.models import ApiResponse, Operation, Parameter


WIDGET_SPEC = {
    "openapi": "3.0.0",
    "info": {"title": "Widgets", "version": "1"},
    "paths": {
        "/widgets/{id}": {
            "get": {
                "operationId": "getWidget",
                "parameters": [
                    {"name": "id", "in": "path", "required": True, "schema": {"type": "string"}}
                ],
            }
        }
    },
}


def _pet_handler(request):
    pet_id = request.url.path.rsplit("/", 1)[-1]
    return httpx.Response(200, json={"id": int(pet_id), "name": "Rex"})


class TestExecutorValidation:
    """Arguments are rejected before any request is sent."""

    @pytest.mark.asyncio
    async def test_missing_required_names_all_parameters(self, backend):
        spec = {
            "openapi": "3.0.0",
            "info": {"title": "t", "version": "1"},
            "paths": {
                "/a/{x}/{y}": {
                    "post": {
                        "operationId": "multi",
                        "parameters": [
                            {"name": "x", "in": "path", "required": True},
                            {"name": "y", "in": "path", "required": True},
                            {"name": "q", "in": "query", "required": True},
                            {"name": "opt", "in": "query"},
                        ],
                        "requestBody": {
                            "required": True,
                            "content": {"application/json": {"schema": {"type": "object"}}},
                        },
                    }
                }
            },
        }
        stack = Stack(backend, spec)

        with pytest.raises(ValidationError) as exc_info:
            await stack.executor.execute_by_name("multi", {"y": "1", "opt": "z"})

        assert exc_info.value.missing == {"x", "q", "body"}
        assert len(backend.requests) == 1  # only the document fetch

    @pytest.mark.asyncio
    async def test_widget_scenario_fails_before_http(self, backend):
        stack = Stack(backend, WIDGET_SPEC, max_retries=2)
        await stack.catalog.ensure_loaded()
        backend.requests.clear()

        with pytest.raises(ValidationError) as exc_info:
            await stack.executor.execute_by_name("getWidget", {})

        assert exc_info.value.missing == {"id"}
        assert "id" in str(exc_info.value)
        assert backend.requests == []

    @pytest.mark.asyncio
    async def test_schema_violation_rejected(self, stack, backend):
        await stack.catalog.ensure_loaded()
        backend.requests.clear()

        with pytest.raises(ValidationError) as exc_info:
            await stack.executor.execute_by_name(
                "addPet", {"body": {"name": "Rex", "color": "brown"}}
            )

        assert "color" in str(exc_info.value)
        assert backend.requests == []

    @pytest.mark.asyncio
    async def test_enum_violation_in_query(self, stack, backend):
        with pytest.raises(ValidationError, match="must be one of"):
            await stack.executor.execute_by_name("findPetsByStatus", {"status": "lost"})

    @pytest.mark.asyncio
    async def test_nested_ref_schema_validated(self, stack):
        with pytest.raises(ValidationError) as exc_info:
            await stack.executor.execute_by_name(
                "addPet", {"body": {"name": "Rex", "category": {"parent": {"id": "x"}}}}
            )

        assert exc_info.value.path == "body.category.parent.id"

    @pytest.mark.asyncio
    async def test_operation_held_across_reload_keeps_its_refs(self, stack, backend):
        await stack.catalog.ensure_loaded()
        add_pet = stack.catalog.get_operation("addPet")
        backend.json("GET", "/api/v3/openapi.json", WIDGET_SPEC)
        backend.json("POST", "/api/v3/pet", {"id": 1, "name": "Rex"})
        await stack.catalog.reload()

        with pytest.raises(ValidationError, match="at least 1 characters"):
            await stack.executor.execute(add_pet, {"body": {"name": ""}})
        response = await stack.executor.execute(add_pet, {"body": {"name": "Rex"}})

        assert response.status == 200
        assert stack.catalog.get_operation("addPet") is None

    @pytest.mark.asyncio
    async def test_unknown_tool(self, stack):
        with pytest.raises(ToolNotFoundError):
            await stack.executor.execute_by_name("nope", {})


class TestExecutorRequests:
    """Request building and dispatch."""

    @pytest.mark.asyncio
    async def test_path_substitution_produces_literal_path(self, stack, backend):
        backend.add("GET", "/api/v3/pet/7", _pet_handler)

        response = await stack.executor.execute_by_name("getPetById", {"id": 7})

        assert response.status == 200
        assert response.body == {"id": 7, "name": "Rex"}
        assert str(backend.calls("GET", "/api/v3/pet/7")[0].url) == f"{API_BASE}/api/v3/pet/7"

    def test_path_values_are_percent_encoded(self, stack):
        operation = Operation(
            name="getFile",
            method="get",
            path="/files/{name}",
            description="",
            parameters=(Parameter("name", "path", True),),
        )

        url, _, _, _ = stack.executor.build_request(operation, {"name": "a b/c"})

        assert url == f"{API_BASE}/api/v3/files/a%20b%2Fc"

    def test_leftover_token_raises_path_substitution_error(self, stack):
        operation = Operation(
            name="inconsistent",
            method="get",
            path="/things/{id}/{other}",
            description="",
            parameters=(Parameter("id", "path", True),),
        )

        with pytest.raises(PathSubstitutionError) as exc_info:
            stack.executor.build_request(operation, {"id": 1})

        assert exc_info.value.tokens == ["{other}"]

    @pytest.mark.asyncio
    async def test_optional_path_parameter_left_unset_is_an_error(self, stack):
        operation = Operation(
            name="optionalPath",
            method="get",
            path="/things/{id}",
            description="",
            parameters=(Parameter("id", "path", False),),
        )

        with pytest.raises(PathSubstitutionError):
            await stack.executor.execute(operation, {})

    @pytest.mark.asyncio
    async def test_query_header_and_body_routing(self, stack, backend):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"id": 1})

        backend.add("POST", "/api/v3/pet", handler)
        backend.add("GET", "/api/v3/pet/findByStatus", handler)

        await stack.executor.execute_by_name("addPet", {"body": {"name": "Rex", "photoUrls": ["a"]}})
        await stack.executor.execute_by_name(
            "findPetsByStatus", {"status": "sold", "tags": ["a", "b"]}
        )

        post, get = seen
        assert json.loads(post.content) == {"name": "Rex", "photoUrls": ["a"]}
        assert post.headers["content-type"] == "application/json"
        assert get.url.params["status"] == "sold"
        assert get.url.params.get_list("tags") == ["a", "b"]

    @pytest.mark.asyncio
    async def test_header_parameter_sent(self, stack, backend):
        seen = []

        def handler(request):
            seen.append(request)
            return _pet_handler(request)

        backend.add("GET", "/api/v3/pet/3", handler)

        await stack.executor.execute_by_name("getPetById", {"id": 3, "X-Trace-Id": "t-1"})

        assert seen[0].headers["x-trace-id"] == "t-1"

    @pytest.mark.asyncio
    async def test_non_2xx_is_returned_not_raised(self, stack, backend):
        backend.json("GET", "/api/v3/pet/9", {"message": "Pet not found"}, status=404)

        response = await stack.executor.execute_by_name("getPetById", {"id": 9})

        assert response.status == 404
        assert response.status_text == "Not Found"
        assert response.body == {"message": "Pet not found"}
        assert len(backend.calls("GET", "/api/v3/pet/9")) == 1

    @pytest.mark.asyncio
    async def test_exhausted_server_errors_return_last_response(self, stack, backend):
        backend.json("GET", "/api/v3/pet/5", {"message": "busy"}, status=503)

        response = await stack.executor.execute_by_name("getPetById", {"id": 5})

        assert response.status == 503
        assert len(backend.calls("GET", "/api/v3/pet/5")) == 3

    @pytest.mark.asyncio
    async def test_transport_failure_becomes_execution_error(self, stack, backend):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        backend.add("DELETE", "/api/v3/pet/1", refuse)

        with pytest.raises(ExecutionError) as exc_info:
            await stack.executor.execute_by_name("deletePet", {"id": 1})

        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
        assert len(backend.calls("DELETE", "/api/v3/pet/1")) == 3

    @pytest.mark.asyncio
    async def test_text_body_kept_as_text(self, stack, backend):
        backend.add("GET", "/api/v3/store/inventory", lambda r: httpx.Response(200, text="plain"))

        response = await stack.executor.execute_by_name("get__store_inventory", {})

        assert response.body == "plain"


class TestExecutorCache:
    """Response caching for GET operations."""

    @pytest.mark.asyncio
    async def test_identical_get_hits_network_once(self, stack, backend):
        backend.add("GET", "/api/v3/pet/7", _pet_handler)

        first = await stack.executor.execute_by_name("getPetById", {"id": 7})
        second = await stack.executor.execute_by_name("getPetById", {"id": 7})

        assert first == second
        assert len(backend.calls("GET", "/api/v3/pet/7")) == 1

    @pytest.mark.asyncio
    async def test_cached_response_expires_after_ttl(self, stack, backend):
        backend.add("GET", "/api/v3/pet/7", _pet_handler)
        await stack.executor.execute_by_name("getPetById", {"id": 7})
        size_with_entry = len(stack.cache)

        stack.clock.advance(301)
        operation = stack.catalog.get_operation("getPetById")
        key = stack.executor.fingerprint(operation, {"id": 7})

        assert stack.cache.get(key) is None
        assert len(stack.cache) == size_with_entry - 1

        await stack.executor.execute_by_name("getPetById", {"id": 7})
        assert len(backend.calls("GET", "/api/v3/pet/7")) == 2

    @pytest.mark.asyncio
    async def test_different_arguments_are_separate_entries(self, stack, backend):
        backend.add("GET", "/api/v3/pet/1", _pet_handler)
        backend.add("GET", "/api/v3/pet/2", _pet_handler)

        await stack.executor.execute_by_name("getPetById", {"id": 1})
        await stack.executor.execute_by_name("getPetById", {"id": 2})

        assert len(backend.calls("GET")) == 3

    @pytest.mark.asyncio
    async def test_authorization_header_part_of_fingerprint(self, stack, backend):
        backend.add("GET", "/api/v3/pet/1", _pet_handler)

        await stack.executor.execute_by_name("getPetById", {"id": 1, "Authorization": "a"})
        await stack.executor.execute_by_name("getPetById", {"id": 1, "Authorization": "b"})

        assert len(backend.calls("GET", "/api/v3/pet/1")) == 2

    @pytest.mark.asyncio
    async def test_other_headers_ignored_by_fingerprint(self, stack, backend):
        backend.add("GET", "/api/v3/pet/1", _pet_handler)

        await stack.executor.execute_by_name("getPetById", {"id": 1, "X-Trace-Id": "one"})
        await stack.executor.execute_by_name("getPetById", {"id": 1, "X-Trace-Id": "two"})

        assert len(backend.calls("GET", "/api/v3/pet/1")) == 1

    def test_fingerprint_is_order_independent(self, stack):
        operation = Operation(
            name="search",
            method="get",
            path="/search",
            description="",
            parameters=(Parameter("a", "query"), Parameter("b", "query")),
        )

        assert stack.executor.fingerprint(operation, {"a": 1, "b": 2}) == stack.executor.fingerprint(
            operation, {"b": 2, "a": 1}
        )

    @pytest.mark.asyncio
    async def test_error_responses_not_cached(self, stack, backend):
        backend.json("GET", "/api/v3/pet/9", {"message": "Pet not found"}, status=404)

        await stack.executor.execute_by_name("getPetById", {"id": 9})
        await stack.executor.execute_by_name("getPetById", {"id": 9})

        assert len(backend.calls("GET", "/api/v3/pet/9")) == 2

    @pytest.mark.asyncio
    async def test_non_get_never_cached(self, stack, backend):
        backend.json("DELETE", "/api/v3/pet/1", {}, status=200)

        await stack.executor.execute_by_name("deletePet", {"id": 1})
        await stack.executor.execute_by_name("deletePet", {"id": 1})

        assert len(backend.calls("DELETE", "/api/v3/pet/1")) == 2

    @pytest.mark.asyncio
    async def test_cache_hit_returns_api_response(self):
        stack = Stack(MockBackend(), WIDGET_SPEC)
        await stack.catalog.ensure_loaded()
        operation = stack.catalog.get_operation("getWidget")
        cached = ApiResponse(status=200, status_text="OK", headers={}, body={"id": "w"})
        stack.cache.set(stack.executor.fingerprint(operation, {"id": "w"}), cached)

        response = await stack.executor.execute(operation, {"id": "w"})

        assert response is cached
        assert stack.backend.calls(path="/api/v3/widgets/w") == []
