"""
MCP (Model Context Protocol) server for agent-recall.

Exposes a MemoryStore as a set of tools so an agent can decide what to
remember and recall it in later sessions.

Run as a stdio server:
    python -m agent_recall.mcp_server

Or via the installed entry-point:
    agent-recall-mcp

Configuration comes from the ``AGENT_RECALL_*`` environment variables
described in ``agent_recall.config``.
"""

from __future__ import annotations

import json
import threading
from typing import Any

from mcp.server.fastmcp import FastMCP

from .config import Settings, configure_logging, load_settings
from .errors import MetadataError
from .memory import MemoryStore
from .models import validate_metadata

# Created on first tool call so the embedding model is only loaded once,
# and only when actually needed.
_store: MemoryStore | None = None
_settings: Settings | None = None
_store_lock = threading.Lock()


def _get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def _get_store() -> MemoryStore:
    global _store
    if _store is None:
        with _store_lock:
            if _store is None:
                _store = MemoryStore.from_settings(_get_settings())
    return _store


def _parse_metadata(metadata_json: str) -> dict[str, Any]:
    """Decode and validate a tool's ``metadata_json`` argument."""
    if not metadata_json:
        return {}
    return validate_metadata(json.loads(metadata_json))


# ---------------------------------------------------------------------------
# FastMCP server
# ---------------------------------------------------------------------------

mcp = FastMCP(
    "agent-recall",
    instructions=(
        "Long-term memory for agents. "
        "Call `remember` with any statement that might be a durable fact, "
        "preference, rule or lesson; the server decides whether it is worth "
        "keeping and skips chit-chat and near-duplicates. "
        "Use `store_memory` to save something unconditionally. "
        "Use `search_memories` to recall relevant context. "
        "Use `delete_memory` to remove an entry that is no longer true. "
        "Use `memory_stats` to see how many memories are stored."
    ),
)


@mcp.tool()
def remember(content: str, metadata_json: str = "") -> str:
    """
    Store *content* only if the memory gate judges it durable and novel.

    Args:
        content:       Candidate memory (a fact, preference, rule, lesson).
        metadata_json: Optional JSON object attached to the stored memory.

    Returns:
        Either the new memory ID or the reason the content was skipped.
    """
    try:
        metadata = _parse_metadata(metadata_json)
    except (json.JSONDecodeError, MetadataError) as exc:
        return f"Error: invalid metadata_json: {exc}"
    store = _get_store()
    gate = store.should_create_memory(**_get_settings().gate_kwargs())
    decision = gate.decide(content)
    if not decision.accepted:
        return f"Not stored ({decision.reason})."
    return f"Stored memory {store.add(content, metadata)}."


@mcp.tool()
def store_memory(content: str, metadata_json: str = "") -> str:
    """
    Store *content* unconditionally.

    Args:
        content:       The text to remember.
        metadata_json: Optional JSON object attached to the memory.

    Returns:
        A confirmation message with the new memory ID.
    """
    try:
        metadata = _parse_metadata(metadata_json)
    except (json.JSONDecodeError, MetadataError) as exc:
        return f"Error: invalid metadata_json: {exc}"
    return f"Stored memory {_get_store().add(content, metadata)}."


@mcp.tool()
def search_memories(query: str, limit: int = 5, mode: str = "hybrid") -> str:
    """
    Retrieve the most relevant memories for a query.

    Args:
        query: Natural-language question or keywords.
        limit: Maximum number of memories to return (default 5).
        mode:  "hybrid" (default), "lexical" or "vector".

    Returns:
        JSON array of memories with id, content, metadata, created_at, score.
    """
    store = _get_store()
    search = {
        "hybrid": store.search_hybrid,
        "lexical": store.search_lexical,
        "vector": store.search_vector,
    }.get(mode)
    if search is None:
        return f"Unknown mode {mode!r}; use hybrid, lexical or vector."
    results = search(query, limit)
    if not results:
        return "No memories found."
    return json.dumps([r.to_dict() for r in results], indent=2)


@mcp.tool()
def delete_memory(memory_id: str) -> str:
    """
    Delete a stored memory by its ID.

    Args:
        memory_id: The ID returned by remember, store_memory or search_memories.
    """
    if _get_store().delete(memory_id):
        return f"Deleted memory {memory_id}."
    return f"No memory with id {memory_id}."


@mcp.tool()
def memory_stats() -> str:
    """Return store statistics (total count, embedding dimension, model) as JSON."""
    return json.dumps(_get_store().stats(), indent=2)


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------


def main() -> None:
    """Run the MCP server over stdio."""
    configure_logging(_get_settings().log_level)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
