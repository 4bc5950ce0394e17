"""Centralised settings for the Inquiry Complex service.

All runtime configuration is resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (two levels up from this file)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Workspace / storage
    # ------------------------------------------------------------------
    workspace_dir: Path = field(
        default_factory=lambda: Path(
            os.environ.get("INQUIRY_WORKSPACE", Path.home() / ".inquiry_data")
        )
    )

    @property
    def db_path(self) -> Path:
        """Absolute path to the SQLite document database."""
        return self.workspace_dir / "documents.db"

    @property
    def blob_dir(self) -> Path:
        """Root directory of the blob store (image assets)."""
        return self.workspace_dir / "blobs"

    @property
    def schema_path(self) -> Path:
        """Absolute path to the schema SQL file bundled with the package."""
        return Path(__file__).resolve().parent / "db" / "schema.sql"

    prompts_dir: Path = field(
        default_factory=lambda: Path(
            os.environ.get(
                "INQUIRY_PROMPTS_DIR", Path(__file__).resolve().parent / "prompts"
            )
        )
    )
    default_collection: str = field(
        default_factory=lambda: os.environ.get("DEFAULT_COLLECTION", "nodes")
    )
    graphs_file: Path | None = field(
        default_factory=lambda: (
            Path(os.environ["GRAPHS_FILE"]) if os.environ.get("GRAPHS_FILE") else None
        )
    )
    graph_init_timeout: float = field(
        default_factory=lambda: float(os.environ.get("GRAPH_INIT_TIMEOUT", "10.0"))
    )

    # ------------------------------------------------------------------
    # LLM gateway (any OpenAI-compatible endpoint)
    # ------------------------------------------------------------------
    llm_base_url: str = field(
        default_factory=lambda: os.environ.get("LLM_BASE_URL", "https://api.openai.com/v1")
    )
    llm_api_key: str = field(
        default_factory=lambda: os.environ.get("OPENAI_API_KEY", "")
    )
    explanation_model: str = field(
        default_factory=lambda: os.environ.get("EXPLANATION_MODEL", "gpt-4o")
    )
    generation_model: str = field(
        default_factory=lambda: os.environ.get("GENERATION_MODEL", "gpt-4o")
    )
    rating_model: str = field(
        default_factory=lambda: os.environ.get("RATING_MODEL", "gpt-4o")
    )
    image_model: str = field(
        default_factory=lambda: os.environ.get("IMAGE_MODEL", "gpt-image-1")
    )
    explanation_temperature: float = field(
        default_factory=lambda: float(os.environ.get("EXPLANATION_TEMPERATURE", "0.7"))
    )
    generation_temperature: float = field(
        default_factory=lambda: float(os.environ.get("GENERATION_TEMPERATURE", "0.7"))
    )
    rating_temperature: float = field(
        default_factory=lambda: float(os.environ.get("RATING_TEMPERATURE", "0.3"))
    )
    request_timeout: float = field(
        default_factory=lambda: float(os.environ.get("REQUEST_TIMEOUT", "60.0"))
    )

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------
    public_base_url: str = field(
        default_factory=lambda: os.environ.get("PUBLIC_BASE_URL", "http://localhost:8000")
    )

    # ------------------------------------------------------------------
    # CLI / logging
    # ------------------------------------------------------------------
    cli_config_dir: Path = field(
        default_factory=lambda: Path(
            os.environ.get("INQUIRY_CLI_DIR", Path.home() / ".inquiry_cli")
        )
    )
    log_level: str = field(
        default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO")
    )

    def ensure_workspace(self) -> None:
        """Create the workspace directory if it does not exist."""
        self.workspace_dir.mkdir(parents=True, exist_ok=True)


# Module-level singleton — import this everywhere:
#   from inquiry.config import settings
settings = Settings()


def configure_logging() -> None:
    """Configure root logging from ``settings.log_level``."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
