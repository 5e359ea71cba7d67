"""Fix-proposal requests to an Ollama chat model, and parsing of its JSON edits."""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, List, Optional, Sequence

import httpx

from ..exceptions import ProposalServiceError
from ..indexer.models import Chunk
from .models import Edit, FixProposal

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "\n".join(
    [
        "You are an automated code-fixing assistant.",
        "Analyze the error message, any user-reported errors and instructions, the relevant code "
        "context and the file content, then propose edits that resolve the problem.",
        "Fix the reported error and any other syntax, runtime or logic issue you find in the "
        "affected code. Keep the original behaviour unless it is the bug.",
        "Return ONLY a valid JSON object with this exact structure:",
        "{",
        '  "edits": [',
        "    {",
        '      "path": "relative/path.py",',
        '      "strategy": "replace_file",',
        '      "new_content": "full updated file content"',
        "    },",
        "    {",
        '      "path": "relative/path.py",',
        '      "strategy": "replace_range",',
        '      "startLine": 5,',
        '      "endLine": 10,',
        '      "new_text": "replacement text for lines 5-10"',
        "    }",
        "  ]",
        "}",
        "Rules:",
        "- Paths are relative to the project root.",
        "- Propose edits for every file that needs a change.",
        "- If preferred paths are given, fix those first and touch others only when necessary.",
        "- Prefer 'replace_file' to avoid partial edit errors.",
        "- For 'replace_range', give exact 1-based inclusive line numbers.",
        "- Output JSON only, no markdown and no explanations.",
        "- If no fix is needed, return an empty edits array.",
    ]
)


def format_chunks(chunks: Sequence[Chunk], root_path: Path) -> str:
    """Render retrieved chunks as labelled excerpts."""
    blocks = []
    for i, chunk in enumerate(chunks, 1):
        try:
            label = os.path.relpath(chunk.file_path, root_path)
        except ValueError:
            label = chunk.file_path
        blocks.append(
            "\n".join(
                [
                    f"# {i} | {label}:{chunk.start_line}-{chunk.end_line}",
                    "```",
                    chunk.text,
                    "```",
                ]
            )
        )
    return "\n\n".join(blocks)


def build_user_prompt(
    error_message: str,
    chunks_block: str,
    extra_context: str = "",
    preferred_paths: Sequence[str] = (),
) -> str:
    """Assemble the user message of a fix request."""
    lines = [f"Error Message: {error_message}"]
    if preferred_paths:
        lines.append(f"Preferred files to focus on: {', '.join(preferred_paths)}")
    if extra_context:
        lines.append(
            "Additional Context (including user-reported errors, message logs, and "
            f"instructions):\n{extra_context}"
        )
    lines.extend(
        [
            "",
            "Relevant Codebase Chunks (from vector search):",
            chunks_block,
            "",
            "Propose the JSON edits now.",
        ]
    )
    return "\n".join(lines)


def parse_proposal(content: Any) -> FixProposal:
    """Parse model output into a proposal.

    Anything that is not a JSON object with an ``edits`` list yields an empty
    proposal; entries that are not objects are dropped.
    """
    data = content
    if isinstance(content, (str, bytes)):
        try:
            data = json.loads(content)
        except ValueError as e:
            logger.warning(f"Fix proposal is not valid JSON, treating as no edits: {e}")
            return FixProposal()

    if not isinstance(data, dict) or not isinstance(data.get("edits"), list):
        logger.warning("Fix proposal has no 'edits' list, treating as no edits")
        return FixProposal()

    return FixProposal(edits=[Edit.from_dict(item) for item in data["edits"] if isinstance(item, dict)])


class OllamaFixProposer:
    """Request structured fixes from an Ollama chat model."""

    def __init__(
        self,
        host: str = "http://localhost:11434",
        model: str = "qwen2.5-coder:7b",
        temperature: float = 0.1,
        timeout: Optional[float] = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the proposer.

        Args:
            host: Ollama API host URL
            model: Chat model used for fixes
            temperature: Sampling temperature (low for deterministic edits)
            timeout: Request timeout in seconds (None waits indefinitely)
            transport: Optional httpx transport (tests inject a MockTransport)
        """
        self.host = host.rstrip("/")
        self.model = model
        self.temperature = temperature
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._client_loop_id: Optional[int] = None

    def _get_client(self) -> httpx.AsyncClient:
        loop_id = id(asyncio.get_running_loop())
        if self._client is None or self._client_loop_id != loop_id:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
            self._client_loop_id = loop_id
        return self._client

    async def propose(
        self,
        error_message: str,
        chunks: Sequence[Chunk],
        root_path: Path,
        extra_context: str = "",
        preferred_paths: Sequence[str] = (),
    ) -> FixProposal:
        """Ask the model for edits.

        Args:
            error_message: Error to fix
            chunks: Retrieved context chunks
            root_path: Project root, for relative chunk labels
            extra_context: Free text from the caller (user report, file content)
            preferred_paths: Relative paths the fix should focus on

        Returns:
            Parsed proposal (empty when the model answers out of contract)

        Raises:
            ProposalServiceError: If the request itself fails
        """
        user = build_user_prompt(
            error_message,
            format_chunks(chunks, root_path),
            extra_context,
            preferred_paths,
        )

        try:
            response = await self._get_client().post(
                f"{self.host}/api/chat",
                json={
                    "model": self.model,
                    "stream": False,
                    "format": "json",
                    "options": {"temperature": self.temperature},
                    "messages": [
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": user},
                    ],
                },
            )
            response.raise_for_status()
            content = response.json().get("message", {}).get("content", "")
        except httpx.HTTPError as e:
            raise ProposalServiceError(f"Fix proposal request failed: {e}") from e
        except (ValueError, AttributeError) as e:
            logger.warning(f"Unexpected chat response format: {e}")
            return FixProposal()

        proposal = parse_proposal((content or "{}").strip())
        logger.info(f"Model proposed {len(proposal.edits)} edits")
        return proposal

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            try:
                await self._client.aclose()
            except Exception as e:
                logger.warning(f"Error closing httpx client: {e}")
            self._client = None
