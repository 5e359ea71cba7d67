"""Environment-driven configuration."""

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .exceptions import ConfigError

SEARCH_BACKENDS = ("exact", "qdrant")


@dataclass
class Config:
    """Settings for one autofixer process."""

    workspace_path: Path
    index_file: Path
    ollama_host: str = "http://localhost:11434"
    embedding_model: str = "nomic-embed-text"
    fix_model: str = "qwen2.5-coder:7b"
    fix_temperature: float = 0.1
    top_k: int = 10
    max_chunk_len: int = 3000
    max_rounds: int = 5
    entry_point: str = "run"
    search_backend: str = "qdrant"
    backup_dir: Path = Path(tempfile.gettempdir()) / "llm_fixes"
    request_timeout: Optional[float] = 120.0
    follow_gitignore: bool = True
    log_level: str = "INFO"
    log_file: Optional[str] = None


def _int(env: Mapping[str, str], name: str, default: int, minimum: int = 0) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None


def get_env_config(env: Optional[Mapping[str, str]] = None) -> Config:
    """Get configuration from environment variables.

    Args:
        env: Mapping to read instead of ``os.environ`` (used by tests)

    Returns:
        Populated Config

    Raises:
        ConfigError: If a numeric or enumerated setting is invalid
    """
    if env is None:
        env = os.environ

    workspace_path = Path(env.get("WORKSPACE_PATH") or os.getcwd()).resolve()
    index_file = env.get("INDEX_FILE")

    search_backend = env.get("SEARCH_BACKEND", "qdrant").lower()
    if search_backend not in SEARCH_BACKENDS:
        raise ConfigError(
            f"SEARCH_BACKEND must be one of {', '.join(SEARCH_BACKENDS)}, got {search_backend!r}"
        )

    timeout = _float(env, "REQUEST_TIMEOUT", 120.0)

    return Config(
        workspace_path=workspace_path,
        index_file=(
            Path(index_file)
            if index_file
            else workspace_path / ".autofixer" / "vector_index.json"
        ),
        ollama_host=env.get("OLLAMA_HOST", "http://localhost:11434"),
        embedding_model=env.get("EMBEDDING_MODEL", "nomic-embed-text"),
        fix_model=env.get("FIX_MODEL", "qwen2.5-coder:7b"),
        fix_temperature=_float(env, "FIX_TEMPERATURE", 0.1),
        top_k=_int(env, "TOP_K", 10, minimum=1),
        max_chunk_len=_int(env, "MAX_CHUNK_LEN", 3000, minimum=1),
        max_rounds=_int(env, "MAX_ROUNDS", 5, minimum=1),
        entry_point=env.get("ENTRY_POINT", "run"),
        search_backend=search_backend,
        backup_dir=Path(env.get("BACKUP_DIR") or Path(tempfile.gettempdir()) / "llm_fixes"),
        request_timeout=timeout if timeout > 0 else None,
        follow_gitignore=env.get("FOLLOW_GITIGNORE", "true").lower() == "true",
        log_level=env.get("LOG_LEVEL", "INFO"),
        log_file=env.get("LOG_FILE") or None,
    )
