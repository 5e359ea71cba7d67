"""Language grammar configuration and detection for tree-sitter."""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "languages.json"


class LanguageConfig:
    """Configuration for a programming language."""

    def __init__(
        self,
        name: str,
        extensions: List[str],
        tree_sitter_language: str,
        grammar_function: str,
        function_types: Dict[str, Dict],
        key_types: Dict[str, str],
    ):
        """Initialize language configuration.

        Args:
            name: Language name (python, javascript, etc.)
            extensions: List of file extensions
            tree_sitter_language: Tree-sitter grammar package identifier
            grammar_function: Function of the grammar package returning the language
            function_types: Function-like AST node types mapped to their configuration
            key_types: Node types that name an enclosed function, mapped to the name field
        """
        self.name = name
        self.extensions = extensions
        self.tree_sitter_language = tree_sitter_language
        self.grammar_function = grammar_function
        self.function_types = function_types
        self.key_types = key_types

    def is_function_node(self, node_type: str) -> bool:
        """Check if a node type is function-like and should become a chunk.

        Args:
            node_type: AST node type

        Returns:
            True if this node type should be chunked
        """
        return node_type in self.function_types

    def get_name_field(self, node_type: str) -> Optional[str]:
        """Get the field name that contains the identifier for this node type.

        Args:
            node_type: AST node type

        Returns:
            Field name or None if the node carries no identifier
        """
        if node_type in self.function_types:
            return self.function_types[node_type].get("name_field")
        return None

    def get_key_field(self, node_type: str) -> Optional[str]:
        """Get the field naming a function nested directly under this node type."""
        return self.key_types.get(node_type)


class LanguageRegistry:
    """Registry of language configurations."""

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize language registry.

        Args:
            config_path: Path to languages.json config file
        """
        self.config_path = config_path or DEFAULT_CONFIG_PATH
        self.languages: Dict[str, LanguageConfig] = {}
        self.extension_map: Dict[str, str] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load language configurations from JSON file."""
        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                config_data = json.load(f)

            for lang_name, lang_config in config_data.items():
                language = LanguageConfig(
                    name=lang_name,
                    extensions=lang_config["extensions"],
                    tree_sitter_language=lang_config["tree_sitter_language"],
                    grammar_function=lang_config.get("grammar_function", "language"),
                    function_types=lang_config["function_types"],
                    key_types=lang_config.get("key_types", {}),
                )
                self.languages[lang_name] = language

                # Build extension to language mapping
                for ext in language.extensions:
                    self.extension_map[ext] = lang_name

            logger.debug(f"Loaded {len(self.languages)} language configurations")

        except Exception as e:
            logger.error(f"Error loading language config from {self.config_path}: {e}")
            raise

    def detect_language(self, file_path: str) -> Optional[str]:
        """Detect programming language from file extension.

        Args:
            file_path: Path to the file

        Returns:
            Language name or None if not recognized
        """
        extension = Path(file_path).suffix.lower()
        return self.extension_map.get(extension)

    def get_language_config(self, language: str) -> Optional[LanguageConfig]:
        """Get configuration for a specific language."""
        return self.languages.get(language)

    def get_supported_languages(self) -> List[str]:
        """Get list of supported language names."""
        return list(self.languages.keys())

    def get_supported_extensions(self) -> List[str]:
        """Get list of all supported file extensions."""
        return list(self.extension_map.keys())

    def is_supported_file(self, file_path: str) -> bool:
        """Check if a file has an extension on the allow-list."""
        return self.detect_language(file_path) is not None


# Global registry instance
_registry: Optional[LanguageRegistry] = None


def get_language_registry(config_path: Optional[Path] = None) -> LanguageRegistry:
    """Get the global language registry instance.

    Args:
        config_path: Path to config file (only used on first call)

    Returns:
        Language registry instance
    """
    global _registry
    if _registry is None:
        _registry = LanguageRegistry(config_path)
    return _registry
