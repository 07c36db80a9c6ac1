"""Language to core registry.

``CoreRegistry`` maps every language code to the core (partition) that
stores its documents.  Unmapped languages resolve to the default core, so
a lookup never fails once the registry exists.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from types import MappingProxyType

from langshard.config import MultiCoreConfig
from langshard.errors import ConfigurationError, ErrorCode

logger = logging.getLogger("langshard")


class CoreRegistry:
    """Immutable mapping of language code to core name plus a default core.

    Parameters
    ----------
    languages_cores_map:
        Language code to core name mapping.
    default_core:
        Core used for unmapped languages and for federated query bases.

    Raises
    ------
    ConfigurationError
        If *default_core* is empty or unset.
    """

    def __init__(self, languages_cores_map: Mapping[str, str], default_core: str | None) -> None:
        if not default_core or not default_core.strip():
            raise ConfigurationError(
                "A default core must be configured",
                code=ErrorCode.E_CONFIG_DEFAULT_CORE_MISSING,
                stage="config",
            )
        self._default_core = default_core
        self._mapping = MappingProxyType(dict(languages_cores_map))

    @classmethod
    def from_config(cls, config: MultiCoreConfig) -> CoreRegistry:
        return cls(config.languages_cores_map, config.default_core)

    @property
    def default_partition(self) -> str:
        return self._default_core

    @property
    def mapping(self) -> Mapping[str, str]:
        return self._mapping

    def resolve(self, language: str) -> str:
        """Return the core configured for *language*, or the default core."""
        core = self._mapping.get(language)
        if core is None:
            logger.debug(
                "langshard | registry | language=%s | code=%s | core=%s",
                language,
                ErrorCode.W_LANGUAGE_UNMAPPED.value,
                self._default_core,
            )
            return self._default_core
        return core

    def all_configured_languages(self) -> set[str]:
        """Return every language with an explicit core mapping."""
        return set(self._mapping)

    def __repr__(self) -> str:
        return f"CoreRegistry(default={self._default_core!r}, languages={sorted(self._mapping)!r})"
