"""Extractor strategies for target anime sites.

Plugin architecture for site-specific extraction:
- loader: Extractor protocol, registry and plugin discovery
- plugins: Actual extractor implementations
"""

from scrapers import loader

__all__ = ["loader"]
