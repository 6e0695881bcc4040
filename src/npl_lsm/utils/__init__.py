"""Shared utilities: file helpers, HTTP client factory, logging formatters."""

__all__: list[str] = []  # Import directly from submodules
