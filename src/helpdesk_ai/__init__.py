"""Two-tier support agents with knowledge-base retrieval and playbooks."""

from .config import AgentConfig, ChunkingConfig, RetrievalConfig

__all__ = ["AgentConfig", "ChunkingConfig", "RetrievalConfig"]
