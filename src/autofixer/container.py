"""Construct and wire the autofixer components from configuration."""

import logging
from dataclasses import dataclass

from .config import Config
from .indexer.chunker import ChunkExtractor
from .indexer.embeddings import OllamaEmbeddings
from .indexer.snapshot import EmbeddingIndex
from .repair.edits import EditApplier
from .repair.loop import RepairLoop
from .repair.proposals import OllamaFixProposer
from .tools.fix_tool import FixTool
from .tools.search_tool import SimilaritySearch
from .vector_db.backends import create_backend

logger = logging.getLogger(__name__)


@dataclass
class Components:
    """Every long-lived component of one autofixer process."""

    config: Config
    extractor: ChunkExtractor
    embeddings: OllamaEmbeddings
    index: EmbeddingIndex
    search: SimilaritySearch
    proposer: OllamaFixProposer
    applier: EditApplier
    fix_tool: FixTool
    repair_loop: RepairLoop

    async def close(self) -> None:
        """Release HTTP clients."""
        await self.embeddings.close()
        await self.proposer.close()


def build_components(config: Config) -> Components:
    """Initialize all components from a configuration."""
    logger.debug(f"Initializing components for {config.workspace_path}")

    extractor = ChunkExtractor(max_chunk_len=config.max_chunk_len)
    embeddings = OllamaEmbeddings(
        host=config.ollama_host,
        model=config.embedding_model,
        timeout=config.request_timeout,
    )
    index = EmbeddingIndex(
        root_path=config.workspace_path,
        snapshot_path=config.index_file,
        extractor=extractor,
        embeddings=embeddings,
        follow_gitignore=config.follow_gitignore,
    )
    search = SimilaritySearch(index, embeddings, create_backend(config.search_backend))
    proposer = OllamaFixProposer(
        host=config.ollama_host,
        model=config.fix_model,
        temperature=config.fix_temperature,
        timeout=config.request_timeout,
    )
    applier = EditApplier(config.workspace_path, config.backup_dir)
    fix_tool = FixTool(search, proposer, applier, config.workspace_path, top_k=config.top_k)
    repair_loop = RepairLoop(
        fix_tool,
        config.workspace_path,
        max_rounds=config.max_rounds,
        entry_point=config.entry_point,
    )

    return Components(
        config=config,
        extractor=extractor,
        embeddings=embeddings,
        index=index,
        search=search,
        proposer=proposer,
        applier=applier,
        fix_tool=fix_tool,
        repair_loop=repair_loop,
    )
