"""Sources package for Covenant Copilot.

Provides crawl site configuration loading.
"""

from .loader import (
    DEFAULT_SITE,
    SiteConfig,
    SiteLoader,
    load_site_config
)

__all__ = [
    'DEFAULT_SITE',
    'SiteConfig',
    'SiteLoader',
    'load_site_config'
]
