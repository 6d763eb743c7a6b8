"""
Content source adapters and the platform registry.
"""

from typing import Dict, Type

from ...config.settings import SourceSettings
from ...utils.exceptions import ConfigurationError, ErrorCode
from .base import ContentSource, SourcePage
from .wordpress import WordPressSource

SOURCE_REGISTRY: Dict[str, Type[ContentSource]] = {
    "wordpress": WordPressSource,
}


def get_content_source(settings: SourceSettings) -> ContentSource:
    """Build the adapter for the configured platform.

    Raises:
        ConfigurationError: If no adapter exists for the platform
    """
    platform = (settings.platform or "").lower()
    source_cls = SOURCE_REGISTRY.get(platform)
    if source_cls is None:
        raise ConfigurationError(
            f"Unsupported source platform: {settings.platform}",
            config_key="source.platform",
            error_code=ErrorCode.CONFIG_UNSUPPORTED_PLATFORM,
        )
    return source_cls(settings)


__all__ = [
    "ContentSource",
    "SourcePage",
    "WordPressSource",
    "SOURCE_REGISTRY",
    "get_content_source",
]
