"""Retrieve context, request a fix and apply it."""

import inspect
import logging
from pathlib import Path
from typing import Any, Callable, List, Sequence

from ..repair.edits import EditApplier
from ..repair.models import EditResult, FixOutcome, FixProposal, TryResult
from ..repair.proposals import OllamaFixProposer, parse_proposal
from .search_tool import SimilaritySearch

logger = logging.getLogger(__name__)


def describe_error(error: BaseException) -> str:
    """One-line error description: ``<ExceptionType>: <message>``."""
    message = str(error)
    return f"{type(error).__name__}: {message}" if message else type(error).__name__


class FixTool:
    """One fix attempt: search, propose, apply."""

    def __init__(
        self,
        search: SimilaritySearch,
        proposer: OllamaFixProposer,
        applier: EditApplier,
        root_path: Path,
        top_k: int = 10,
    ):
        """Initialize the fix tool.

        Args:
            search: Similarity search over the code index
            proposer: Fix-proposal service client
            applier: Edit applier
            root_path: Project root
            top_k: Number of context chunks sent with each request
        """
        self.search = search
        self.proposer = proposer
        self.applier = applier
        self.root_path = Path(root_path)
        self.top_k = top_k

    async def help(
        self,
        error_message: str,
        extra_context: str = "",
        preferred_paths: Sequence[str] = (),
    ) -> FixOutcome:
        """Request a fix for an error and apply the proposed edits.

        Args:
            error_message: Error to fix
            extra_context: Free text passed to the model and used for retrieval
            preferred_paths: Relative paths the fix should focus on

        Returns:
            The proposal and one result per edit

        Raises:
            EmbeddingServiceError: If retrieval fails
            ProposalServiceError: If the proposal request fails
        """
        chunks = await self.search.search(f"{error_message}\n{extra_context or ''}", self.top_k)
        proposal = await self.proposer.propose(
            error_message,
            chunks,
            self.root_path,
            extra_context=extra_context,
            preferred_paths=preferred_paths,
        )
        results = self.applier.apply(proposal.edits)
        outcome = FixOutcome(proposal=proposal, results=results)
        if proposal.edits:
            logger.info(
                f"Applied {outcome.applied}/{len(results)} edits: "
                f"{[result.path for result in results if result.ok]}"
            )
        else:
            logger.info("No edits proposed")
        return outcome

    def apply_fix(self, fix: Any) -> List[EditResult]:
        """Apply a fix given as a proposal or as ``{"edits": [...]}``.

        Returns:
            One result per edit; empty for anything that is not a fix
        """
        if isinstance(fix, FixProposal):
            return self.applier.apply(fix.edits)
        if not isinstance(fix, dict) or not isinstance(fix.get("edits"), list):
            return []
        return self.applier.apply(parse_proposal(fix).edits)

    async def try_and_fix(
        self,
        fn: Callable[[], Any],
        extra_context: str = "",
        preferred_paths: Sequence[str] = (),
    ) -> TryResult:
        """Run a callable once; on failure request and apply a fix.

        The callable is not retried; the caller decides whether to run it again.
        """
        try:
            out = fn()
            if inspect.isawaitable(out):
                out = await out
            return TryResult(ok=True, out=out)
        except Exception as e:
            error_message = describe_error(e)

        fix = await self.help(error_message, extra_context, preferred_paths)
        return TryResult(ok=False, error=error_message, fix=fix)
