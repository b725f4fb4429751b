"""Site configuration loader for Covenant Copilot.

Loads and validates crawl site definitions from YAML files.
"""

import re
import yaml
from pathlib import Path
from typing import Dict, List, Any, Optional, Pattern
from dataclasses import dataclass, field, replace
import logging

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "CovenantCopilot/1.0 (+https://covenantcopilot.com)"

DEFAULT_EXCLUDE_PATTERNS = [
    r"/admin/",
    r"/login",
    r"/logout",
    r"/search\?",
    r"\.pdf$",
    r"\.docx?$",
    r"\.xlsx?$",
    r"\.zip$",
    r"\.jpe?g$",
    r"\.png$",
    r"\.gif$",
    r"\.svg$",
    r"\.css$",
    r"\.js$",
    r"\.json$",
    r"\.xml$",
    r"/calendar/",
    r"/events\?",
    r"^mailto:",
    r"^tel:",
]

DEFAULT_PAGE_EXTENSIONS = [".html", ".htm", ".php", ".asp", ".aspx", ".jsp", ""]


@dataclass
class SiteConfig:
    """Configuration for one crawlable site."""
    name: str
    domain: str
    scheme: str = "https"
    seed_paths: List[str] = field(default_factory=lambda: [""])
    exclude: List[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS))
    page_extensions: List[str] = field(default_factory=lambda: list(DEFAULT_PAGE_EXTENSIONS))
    user_agent: str = DEFAULT_USER_AGENT
    crawl_delay: float = 2.0
    max_pages: int = 500
    timeout: float = 30.0
    use_sitemap: bool = True
    curated_pages: List[str] = field(default_factory=list)
    pdf_path: Optional[str] = None
    pdf_title: Optional[str] = None
    fallback_urls: List[str] = field(default_factory=list)

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.name:
            raise ValueError("Site name cannot be empty")

        if not self.domain or "/" in self.domain:
            raise ValueError(f"Invalid domain: {self.domain!r}")

        if self.scheme not in ("http", "https"):
            raise ValueError(f"Invalid scheme: {self.scheme}")

        if self.crawl_delay < 0:
            raise ValueError("Crawl delay cannot be negative")

        if self.max_pages <= 0:
            raise ValueError("Page budget must be positive")

        self.page_extensions = [ext.lower() for ext in self.page_extensions]
        for pattern in self.exclude:
            re.compile(pattern)

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.domain}"

    @property
    def sitemap_url(self) -> str:
        return f"{self.base_url}/sitemap.xml"

    def seed_urls(self) -> List[str]:
        """Absolute seed URLs, in configured order."""
        return [self.base_url + path for path in self.seed_paths]

    def curated_urls(self) -> List[str]:
        return [self.base_url + path for path in self.curated_pages]

    def exclusion_patterns(self) -> List[Pattern[str]]:
        return [re.compile(p, re.IGNORECASE) for p in self.exclude]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SiteConfig':
        """Create SiteConfig from dictionary."""
        kwargs = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**kwargs)


class SiteLoader:
    """Loads site configurations from YAML files."""

    def __init__(self, sources_dir: Optional[Path] = None):
        """Initialize site loader.

        Args:
            sources_dir: Directory containing site YAML files.
                        Defaults to the directory of this file.
        """
        if sources_dir is None:
            sources_dir = Path(__file__).parent

        self.sources_dir = Path(sources_dir)
        self._cache: Dict[str, SiteConfig] = {}
        self._last_modified: Dict[str, float] = {}

    def load_site_config(self, site_name: str) -> Optional[SiteConfig]:
        """Load configuration for a specific site.

        Args:
            site_name: Name of the site (without .yaml extension)

        Returns:
            SiteConfig if found and valid, None otherwise
        """
        yaml_file = self.sources_dir / f"{site_name}.yaml"

        if not yaml_file.exists():
            logger.warning(f"Site configuration not found: {yaml_file}")
            return None

        current_mtime = yaml_file.stat().st_mtime
        if (site_name in self._cache and
                self._last_modified.get(site_name, 0) >= current_mtime):
            return self._cache[site_name]

        try:
            with open(yaml_file, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML file {yaml_file}: {e}")
            return None

        if not data:
            logger.error(f"Empty or invalid YAML file: {yaml_file}")
            return None

        if data.get('name', site_name) != site_name:
            logger.warning(f"Site name mismatch in {yaml_file}: {data['name']} != {site_name}")
        data['name'] = site_name

        try:
            config = SiteConfig.from_dict(data)
        except (ValueError, TypeError, re.error) as e:
            logger.error(f"Invalid site configuration in {yaml_file}: {e}")
            return None

        self._cache[site_name] = config
        self._last_modified[site_name] = current_mtime
        logger.info(f"Loaded site configuration: {site_name}")
        return config


# Global site loader instance
_site_loader = SiteLoader()

DEFAULT_SITE = "hrcaonline"


def load_site_config(site_name: str = DEFAULT_SITE, **overrides) -> Optional[SiteConfig]:
    """Load a site configuration, optionally with some fields replaced.

    Overrides are applied to a copy, so the cached configuration is never
    changed. An invalid override raises ValueError.
    """
    config = _site_loader.load_site_config(site_name)
    if config is None or not overrides:
        return config
    return replace(config, **overrides)
