"""Configuration model for langshard.

Provides ``MultiCoreConfig`` with the language/core mapping, the default
core, the search server address and the transport resilience settings.
Supports loading overrides from YAML or JSON files via the ``from_file()``
classmethod.
"""

from __future__ import annotations

import json
import pathlib

from pydantic import BaseModel, Field, field_validator


class MultiCoreConfig(BaseModel):
    """All tunable parameters with sensible defaults.

    ``default_core`` has no usable default on purpose: a registry built from
    a config that leaves it empty raises ``ConfigurationError``.
    """

    # --- Search server ---
    search_server_uri: str = Field(
        default="http://localhost:8983/solr",
        description="Base URI of the search server, as protocol://host[/path].",
    )

    # --- Language / core mapping ---
    default_core: str = ""
    languages_cores_map: dict[str, str] = {}

    # --- Language directory ---
    site_languages: list[str] = Field(
        default=[],
        description="Site language list; the first entry is the main language.",
    )
    search_main_language_only: bool = False
    content_languages: list[str] = Field(
        default=[],
        description="Live content languages. Falls back to site_languages when empty.",
    )

    # --- Requests ---
    update_content_type: str = "text/xml"
    max_workers: int = Field(
        default=4,
        ge=1,
        description="Maximum concurrent partition requests per logical operation.",
    )

    # --- Backend resilience ---
    backend_timeout_seconds: float = 30.0
    backend_max_retries: int = 2
    backend_backoff_base: float = 1.0

    @field_validator("search_server_uri")
    @classmethod
    def _validate_server_uri(cls, value: str) -> str:
        if "://" not in value:
            raise ValueError("search_server_uri must look like protocol://host[/path]")
        return value

    @classmethod
    def from_file(cls, path: str) -> MultiCoreConfig:
        """Load configuration from a YAML or JSON file.

        File format is detected by extension: ``.yaml`` / ``.yml`` for YAML,
        ``.json`` for JSON.  Any keys present in the file override the
        corresponding defaults; keys not present retain their defaults.
        """
        file_path = pathlib.Path(path)
        if not file_path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        suffix = file_path.suffix.lower()

        if suffix in (".yaml", ".yml"):
            import yaml

            with open(file_path) as fh:
                data = yaml.safe_load(fh)
        elif suffix == ".json":
            with open(file_path) as fh:
                data = json.load(fh)
        else:
            raise ValueError(
                f"Unsupported config file extension '{suffix}'. "
                "Use .yaml, .yml, or .json."
            )

        if data is None:
            data = {}

        return cls(**data)
