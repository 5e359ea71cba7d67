"""Function-level code chunking using tree-sitter, with a whole-file fallback."""

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import tree_sitter_go as tsgo
import tree_sitter_java as tsjava
import tree_sitter_javascript as tsjavascript
import tree_sitter_python as tspython
import tree_sitter_rust as tsrust
import tree_sitter_typescript as tstypescript
from tree_sitter import Language, Parser

from .grammars import LanguageConfig, LanguageRegistry, get_language_registry
from .models import FILE_CHUNK, FUNCTION_CHUNK, Chunk, chunk_id

logger = logging.getLogger(__name__)

LINE_SPLIT = re.compile(r"\r?\n")
DEFAULT_MAX_CHUNK_LEN = 3000


def split_lines(text: str) -> List[str]:
    """Split text into lines on LF or CRLF. A trailing newline yields a final empty line."""
    return LINE_SPLIT.split(text)


class ChunkExtractor:
    """Turn one file's text into retrievable chunks."""

    # Grammar module mapping
    LANGUAGE_MODULES = {
        "python": tspython,
        "javascript": tsjavascript,
        "typescript": tstypescript,
        "go": tsgo,
        "rust": tsrust,
        "java": tsjava,
    }

    def __init__(
        self,
        max_chunk_len: int = DEFAULT_MAX_CHUNK_LEN,
        registry: Optional[LanguageRegistry] = None,
    ):
        """Initialize the extractor.

        Args:
            max_chunk_len: Maximum chunk text length in characters
            registry: Language registry (defaults to the global one)
        """
        self.max_chunk_len = max_chunk_len
        self.registry = registry or get_language_registry()
        self.parsers: Dict[str, Parser] = {}
        self.warnings: List[str] = []
        self._init_languages()

    def _init_languages(self) -> None:
        """Initialize tree-sitter parsers for every configured language."""
        for lang_name in self.registry.get_supported_languages():
            lang_config = self.registry.get_language_config(lang_name)
            if not lang_config:
                continue

            module = self.LANGUAGE_MODULES.get(lang_config.tree_sitter_language)
            if not module:
                logger.warning(f"No grammar module for language: {lang_config.tree_sitter_language}")
                continue

            lang_func = getattr(module, lang_config.grammar_function, None)
            if not lang_func:
                logger.warning(
                    f"Grammar {lang_config.tree_sitter_language} has no function "
                    f"'{lang_config.grammar_function}'"
                )
                continue

            try:
                self.parsers[lang_name] = Parser(Language(lang_func()))
                logger.debug(f"Initialized parser for {lang_name}")
            except Exception as e:
                logger.error(f"Error initializing language {lang_name}: {e}")

    def _warn(self, message: str) -> None:
        self.warnings.append(message)
        logger.warning(message)

    def _parse(self, file_path: str, source: bytes) -> Optional[Any]:
        """Parse source into a tree-sitter root node.

        Returns:
            Root node, or None when the file has no parser or does not parse cleanly
        """
        language = self.registry.detect_language(file_path)
        parser = self.parsers.get(language) if language else None
        if parser is None:
            logger.debug(f"No parser available for {file_path}")
            return None

        try:
            tree = parser.parse(source)
        except Exception as e:
            self._warn(f"Parse failure in {file_path}: {e}")
            return None

        if tree.root_node.has_error:
            self._warn(f"Parse errors in {file_path}, using whole-file chunk")
            return None

        return tree.root_node

    def _node_name(self, node: Any, lang_config: LanguageConfig) -> str:
        """Name for a function node.

        Own identifier first, then the name of the enclosing property, key or
        variable, then the node type.
        """
        name_field = lang_config.get_name_field(node.type)
        if name_field:
            name_node = node.child_by_field_name(name_field)
            if name_node is not None and name_node.text:
                return name_node.text.decode("utf-8", errors="replace")

        parent = node.parent
        if parent is not None:
            key_field = lang_config.get_key_field(parent.type)
            if key_field:
                key_node = parent.child_by_field_name(key_field)
                if key_node is not None and key_node.text:
                    return key_node.text.decode("utf-8", errors="replace")

        return node.type

    def _collect_functions(
        self,
        root: Any,
        lines: List[str],
        file_path: str,
        lang_config: LanguageConfig,
    ) -> List[Chunk]:
        """Walk the tree in pre-order and cut one chunk per function-like node.

        Nested functions are collected as well as their enclosing function.
        """
        chunks = []
        stack = [root]
        while stack:
            node = stack.pop()

            # Keyword tokens such as `lambda` share their type name with the node
            if node.is_named and lang_config.is_function_node(node.type):
                start = node.start_point[0] + 1  # Tree-sitter rows are 0-based
                end = node.end_point[0] + 1
                text = "\n".join(lines[start - 1 : end])
                chunks.append(
                    Chunk(
                        id=chunk_id(file_path, start, end),
                        file_path=file_path,
                        kind=FUNCTION_CHUNK,
                        name=self._node_name(node, lang_config),
                        start_line=start,
                        end_line=end,
                        text=text[: self.max_chunk_len],
                        language=lang_config.name,
                    )
                )

            stack.extend(reversed(node.children))

        return chunks

    def file_chunk(self, file_path: str, text: str, language: Optional[str] = None) -> Chunk:
        """Single chunk covering the whole file."""
        line_count = len(split_lines(text))
        return Chunk(
            id=chunk_id(file_path, 1, line_count),
            file_path=file_path,
            kind=FILE_CHUNK,
            name=Path(file_path).name,
            start_line=1,
            end_line=line_count,
            text=text[: self.max_chunk_len],
            language=language,
        )

    def extract(self, file_path: str, text: str) -> List[Chunk]:
        """Extract chunks from one file's text.

        Args:
            file_path: Path recorded on the chunks (also used for language detection)
            text: File content

        Returns:
            One chunk per function-like node, or exactly one whole-file chunk
            when parsing fails or no function is found
        """
        language = self.registry.detect_language(file_path)
        lang_config = self.registry.get_language_config(language) if language else None

        chunks: List[Chunk] = []
        root = self._parse(file_path, text.encode("utf-8")) if lang_config else None
        if root is not None:
            chunks = self._collect_functions(root, split_lines(text), file_path, lang_config)

        if not chunks:
            return [self.file_chunk(file_path, text, language)]

        logger.debug(f"Extracted {len(chunks)} function chunks from {file_path}")
        return chunks

    def extract_file(self, file_path: str) -> List[Chunk]:
        """Read a file from disk and extract its chunks.

        Raises:
            OSError: If the file cannot be read
        """
        with open(file_path, "r", encoding="utf-8", errors="replace", newline="") as f:
            text = f.read()
        return self.extract(file_path, text)
