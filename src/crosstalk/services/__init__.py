"""Service modules for the CLI and web API."""

from . import cli, exercise, web_api

__all__ = ["cli", "exercise", "web_api"]
