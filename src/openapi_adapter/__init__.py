"""Expose an OpenAPI-described REST API as validated, cached, retrying operations."""
