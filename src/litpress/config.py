"""Application configuration: settings schema and litpress.yaml loader"""

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field


CONFIG_FILE = "litpress.yaml"
ENV_PREFIX = "LITPRESS_"
_MAPPING_FIELDS = {"language_defaults"}


class Settings(BaseModel):
    content_dir:   str = Field(default="content",          description="Root directory of .md documents")
    output_dir:    str = Field(default="dist",             description="Directory for built HTML pages")
    cache_dir:     str = Field(default=".litpress/cache",  description="Block module cache and hydration loaders")
    cache_backend: str = Field(default="file", pattern="^(file|sql|memory)$", description="file, sql, or memory")
    db_url:        str = Field(default="sqlite:///litpress-cache.db", description="Database for the sql cache backend")
    parser_config: str = Field(default="gfm-like",         description="MarkdownIt parser preset name")
    build_concurrency: int = Field(default=4, ge=1,        description="Documents processed at once")
    default_use:   str = Field(default="preview",          description=":use for blocks without one")
    language_defaults: dict[str, str] = Field(default_factory=dict, description="Per-language default :use")
    base_url:      str = Field(default="/",                description="Site base URL exposed to render functions")
    dev:           bool = Field(default=False,             description="Development mode: drafts visible, stack traces shown")
    cache_server_results: bool = Field(default=False,      description="Reuse server block results while the source is unchanged")
    execution_timeout: Optional[float] = Field(default=None, gt=0, description="Seconds before a server block is abandoned")


def _env_value(name: str, raw: str) -> Any:
    """Mapping fields arrive as YAML/JSON text; everything else is left to pydantic."""
    if name not in _MAPPING_FIELDS:
        return raw
    try:
        return yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid {ENV_PREFIX}{name.upper()}: {e}") from e


def load_config(overrides: dict[str, Any] = None) -> Settings:
    """Load Settings from litpress.yaml, then LITPRESS_<FIELD> env vars, then non-None CLI overrides."""
    data: dict[str, Any] = {}
    if Path(CONFIG_FILE).exists():
        try:
            data = yaml.safe_load(Path(CONFIG_FILE).read_text()) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid {CONFIG_FILE}: {e}") from e

    for name in Settings.model_fields:
        if val := os.getenv(f"{ENV_PREFIX}{name.upper()}"):
            data[name] = _env_value(name, val)

    if overrides:
        data.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**data)
