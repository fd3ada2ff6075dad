"""Configuration management for the document structuring service.

Loads a YAML file into pydantic models with defaults for OCR, the LLM
structuring step, run policy, upload storage, and the database.
"""

import logging
import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("configs/config.yaml")


class OCRConfig(BaseModel):
    """Configuration for the Tesseract OCR extractor."""

    tesseract_cmd: str | None = None
    default_lang: str = "eng"
    psm: int = 3
    pdf_dpi: int = 300
    binarize: bool = True
    binarize_method: Literal["adaptive", "otsu"] = "adaptive"


class LLMConfig(BaseModel):
    """Configuration for the chat-completion structuring call."""

    model: str = "gpt-4o-mini"
    api_key_env: str = "OPENAI_API_KEY"
    base_url: str | None = None
    temperature: float = 0.0
    max_tokens: int = 3000
    timeout_s: float = 120.0

    def api_key(self) -> str | None:
        """Read the API key from the configured environment variable."""
        return os.getenv(self.api_key_env) or None


class PipelineConfig(BaseModel):
    """Run-level policy for the structuring pipeline."""

    fallback_status: Literal["COMPLETED", "FAILED"] = "COMPLETED"
    default_document_type: str = "generic_form"


class StorageConfig(BaseModel):
    """Where uploaded documents are written."""

    local_dir: str = "data/uploads"


class DatabaseConfig(BaseModel):
    """SQLAlchemy connection settings."""

    url: str = "sqlite:///data/docstruct.db"
    echo: bool = False


class AppConfig(BaseModel):
    """Top-level application configuration."""

    ocr: OCRConfig = Field(default_factory=OCRConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    log_level: str = "INFO"


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file. Defaults to the
            ``DOCSTRUCT_CONFIG`` environment variable, then configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = Path(os.getenv("DOCSTRUCT_CONFIG", str(DEFAULT_CONFIG_PATH)))

    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        return AppConfig(**raw)

    logger.info("No config file found at %s, using defaults", path)
    return AppConfig()
