"""Configuration-backed language directory."""

from __future__ import annotations

from langshard.config import MultiCoreConfig


class StaticLanguageDirectory:
    """Language directory fixed at construction time.

    Satisfies :class:`~langshard.protocols.LanguageDirectory`.  Content
    languages default to the site languages when none are configured.
    """

    def __init__(
        self,
        site_languages: list[str] | None = None,
        main_language_only: bool = False,
        content_languages: list[str] | None = None,
    ) -> None:
        self._site_languages = list(site_languages or [])
        self._main_language_only = main_language_only
        self._content_languages = list(content_languages or self._site_languages)

    @classmethod
    def from_config(cls, config: MultiCoreConfig) -> StaticLanguageDirectory:
        return cls(
            site_languages=config.site_languages,
            main_language_only=config.search_main_language_only,
            content_languages=config.content_languages,
        )

    def site_languages(self) -> list[str]:
        return list(self._site_languages)

    def main_language_only(self) -> bool:
        return self._main_language_only

    def content_languages(self) -> list[str]:
        return list(self._content_languages)
