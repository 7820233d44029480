"""Stock Decision MCP Server."""

import os


def get_server_version() -> str:
    """Get version with fallback for dev mode."""
    if version := os.environ.get("SERVER_VERSION"):
        return version
    try:
        from importlib.metadata import version as pkg_version

        return pkg_version("stock-decision")
    except Exception:
        return "dev"


SERVER_VERSION = get_server_version()
# Bump when output schema changes materially (new fields, renamed fields, structure changes)
# v1: Strategic/Tactical evaluations, market context, confirmation, ranking, portfolio
# v2: Two-stage tactical evaluation, playbooks with tracking, decision labels
SCHEMA_VERSION = "2"
# Engine version reported in evaluation metadata
ENGINE_VERSION = "1.0.0"
