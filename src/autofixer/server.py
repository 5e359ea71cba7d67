"""FastMCP server exposing the repair loop and code search as tools."""

import logging
from typing import Optional

from mcp.server.fastmcp import FastMCP

from .config import get_env_config
from .container import Components, build_components
from .logging_setup import configure_logging
from .repair.loop import RepairLoop

logger = logging.getLogger(__name__)

# Initialize FastMCP server
mcp = FastMCP("codebase-autofixer")

# Global components (initialized on startup)
components: Optional[Components] = None


def initialize_components() -> Components:
    """Initialize all components from the environment."""
    global components

    config = get_env_config()
    logger.info(f"Initializing codebase-autofixer for {config.workspace_path}")
    components = build_components(config)
    logger.info("All components initialized successfully!")
    return components


@mcp.tool()
async def fix_and_test_file(
    path: str,
    entry_point: Optional[str] = None,
    max_rounds: Optional[int] = None,
    extra_context: str = "",
) -> dict:
    """Run a Python module's entry point and repair the module until it succeeds.

    Args:
        path: Module file, absolute or relative to the workspace
        entry_point: Name of the validating callable (defaults to the configured one)
        max_rounds: Maximum number of repair rounds (defaults to the configured one)
        extra_context: User-reported errors and instructions passed to the model

    Returns:
        Dictionary with the outcome, round count and per-round history
    """
    if not components:
        return {"success": False, "error": "Server not initialized"}

    loop = components.repair_loop
    if entry_point or max_rounds:
        loop = RepairLoop(
            components.fix_tool,
            components.config.workspace_path,
            max_rounds=max_rounds or components.config.max_rounds,
            entry_point=entry_point or components.config.entry_point,
            loader=components.repair_loop.loader,
        )

    result = await loop.run(path, extra_context)
    return {"success": result.ok, **result.to_dict()}


@mcp.tool()
async def search_code(query: str, limit: int = 10) -> dict:
    """Search the indexed codebase with a natural language or error-message query.

    Args:
        query: Search text
        limit: Maximum number of results to return (default: 10)

    Returns:
        Dictionary with matching chunks, best first
    """
    if not components:
        return {"success": False, "error": "Server not initialized"}

    return await components.search.search_code(query, limit)


@mcp.tool()
async def rebuild_index() -> dict:
    """Rebuild the vector index of the workspace from scratch.

    Returns:
        Dictionary with the number of indexed chunks
    """
    if not components:
        return {"success": False, "error": "Server not initialized"}

    try:
        snapshot = await components.index.load_or_build(force=True)
        components.search.use_snapshot(snapshot)
        return {
            "success": True,
            "chunks": len(snapshot.chunks),
            "index_file": str(components.config.index_file),
            "warnings": list(components.index.warnings),
        }

    except Exception as e:
        logger.error(f"Error rebuilding index: {e}")
        return {"success": False, "error": str(e)}


@mcp.tool()
def apply_fix(fix: dict) -> dict:
    """Apply a fix of the form {"edits": [...]} to the workspace.

    Args:
        fix: Edit list in the replace_file / replace_range format

    Returns:
        Dictionary with one result per edit
    """
    if not components:
        return {"success": False, "error": "Server not initialized"}

    results = components.fix_tool.apply_fix(fix)
    return {
        "success": all(result.ok for result in results),
        "results": [result.to_dict() for result in results],
    }


@mcp.tool()
async def get_index_status() -> dict:
    """Get statistics about the persisted index and the embedding service.

    Returns:
        Dictionary with snapshot metadata and service health
    """
    if not components:
        return {"success": False, "error": "Server not initialized"}

    snapshot = components.index.load()
    return {
        "success": True,
        "index_file": str(components.config.index_file),
        "built": snapshot is not None,
        "created_at": snapshot.created_at if snapshot else None,
        "model": snapshot.embedding_model if snapshot else None,
        "chunks": len(snapshot.chunks) if snapshot else 0,
        "current": components.index.is_current(snapshot) if snapshot else False,
        "backend": components.search.backend.name,
        "embeddings_healthy": await components.embeddings.health_check(),
    }


def main() -> None:
    config = get_env_config()
    configure_logging(config.log_level, config.log_file)

    logger.info("Starting codebase-autofixer MCP server...")
    initialize_components()

    # Run the MCP server (blocks until shutdown)
    try:
        mcp.run()
    except KeyboardInterrupt:
        logger.info("Server interrupted")


if __name__ == "__main__":
    main()
