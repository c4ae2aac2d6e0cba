import importlib
import sys
from os import listdir
from os.path import abspath, dirname, isfile, join
from typing import Protocol

from models.models import EpisodeRef
from scrapers.plugins.utils import IndirectionRule
from utils.exceptions import ExtractorNotFoundError
from utils.logging import get_logger

logger = get_logger(__name__)


class ExtractorProtocol(Protocol):
    """Protocol for site-specific extractor strategies.

    The pipeline shape (search -> dynamic extraction -> protection check) is
    fixed; a strategy only supplies the URLs, selectors and patterns of one
    target site. Uses structural typing (duck typing) - no inheritance required.
    """

    name: str  # Plugin identifier (e.g., "nineanime")
    base_url: str  # Site root without trailing slash
    player_selectors: list[str]  # CSS selectors for player iframes, most specific first
    nested_iframe_selectors: list[str]  # Selectors tried inside an indirection iframe
    listing_markers: list[str]  # href fragments of anime listing links

    def direct_episode_url(self, slug: str, episode_number: int) -> str:
        """URL guessed from the title slug (search fast path)."""
        ...

    def search_url(self, title: str) -> str:
        """Keyword search URL for a title."""
        ...

    def exact_link_markers(self, slug: str) -> list[str]:
        """href fragments that identify an exact slug match, in priority order."""
        ...

    def fallback_markers(self, slug: str) -> list[str]:
        """href fragments accepted as a last resort, in priority order."""
        ...

    def episode_link(self, link: str, slug: str, episode_number: int) -> str:
        """Rewrite a found anime/episode link so it points at ``episode_number``."""
        ...

    def anime_id_from_link(self, link: str) -> str | None:
        """Extract the site's anime identifier from a link."""
        ...

    def match_raw_html(self, html: str) -> str | None:
        """Last-resort regex scan of a rendered page for a stream URL."""
        ...

    def indirection_rule_for(self, url: str) -> IndirectionRule | None:
        """Rule for hopping through an intermediate player page, if any."""
        ...

    def is_preferred_provider(self, url: str) -> bool:
        """True when ``url`` already points at a final video provider."""
        ...

    def is_embeddable_provider(self, url: str) -> bool:
        """True when protection signatures should be ignored for ``url``."""
        ...

    def parse_episode_list(
        self, html: str, anime_link: str, anime_id: str, max_episodes: int
    ) -> list[EpisodeRef]:
        """Episodes listed on an anime page, sorted by number."""
        ...


_registry: dict[str, ExtractorProtocol] = {}


def register(extractor: ExtractorProtocol) -> None:
    _registry[extractor.name] = extractor


def get_extractor(name: str) -> ExtractorProtocol:
    """Return a registered extractor, loading plugins on first use.

    Raises:
        ExtractorNotFoundError: If no plugin registered ``name``
    """
    if not _registry:
        load_plugins()
    try:
        return _registry[name]
    except KeyError:
        raise ExtractorNotFoundError(
            f"Extractor '{name}' not available (loaded: {', '.join(available_extractors()) or 'none'})"
        ) from None


def available_extractors() -> list[str]:
    return sorted(_registry)


def get_resource_path(relative_path):
    """Get the path to resources, whether running as script or executable."""
    if hasattr(sys, "_MEIPASS"):
        # PyInstaller executable
        return join(sys._MEIPASS, relative_path)
    return join(dirname(abspath(__file__)), relative_path)


def discover_plugins() -> list[str]:
    """Names of plugin modules shipped in scrapers/plugins/."""
    path = get_resource_path("plugins/")
    system = {"__init__.py", "utils.py"}
    return sorted(
        file[:-3]
        for file in listdir(path)
        if isfile(join(path, file)) and file.endswith(".py") and file not in system
    )


def load_plugins(plugins: list[str] | None = None, disabled: list[str] | None = None) -> None:
    """Import plugin modules and let each register its extractor.

    Args:
        plugins: Optional explicit list of plugin modules to load.
                 If None, loads every discovered plugin.
        disabled: Plugin names to skip. Defaults to settings.scraper.disabled_plugins.
    """
    if disabled is None:
        from models.config import settings

        disabled = settings.scraper.disabled_plugins

    names = plugins if plugins is not None else discover_plugins()
    for plugin in names:
        if plugin in disabled:
            logger.debug(f"Skipping disabled extractor plugin '{plugin}'")
            continue
        plugin_module = importlib.import_module("scrapers.plugins." + plugin)
        plugin_module.load()
        logger.debug(f"Loaded extractor plugin '{plugin}'")
