import re
from dataclasses import dataclass, field


def first_url_match(
    html: str, patterns: tuple[re.Pattern, ...] | list[re.Pattern], accept: re.Pattern | None = None
) -> str | None:
    """Return the first absolute URL captured by ``patterns`` in priority order.

    Patterns with a group yield group 1, patterns without one yield the whole
    match. When ``accept`` is given, the URL must also match it.
    """
    for pattern in patterns:
        for match in pattern.finditer(html):
            url = match.group(1) if pattern.groups else match.group(0)
            url = url.strip().strip("\"'")
            if not url.startswith(("http://", "https://")):
                continue
            if accept is not None and not accept.search(url):
                continue
            return url
    return None


@dataclass(frozen=True)
class IndirectionRule:
    """How to resolve an intermediate player page into the real provider URL.

    Attributes:
        name: Label used in logs
        host: Matches URLs this rule applies to
        patterns: Tried in order against the intermediate page's HTML
        preferred: When set, only URLs matching it are accepted by ``patterns``
        fallback_patterns: Tried without the preference when ``patterns`` miss
    """

    name: str
    host: re.Pattern
    patterns: tuple[re.Pattern, ...]
    preferred: re.Pattern | None = None
    fallback_patterns: tuple[re.Pattern, ...] = field(default_factory=tuple)

    def applies_to(self, url: str) -> bool:
        return bool(self.host.search(url))

    def resolve(self, html: str) -> str | None:
        url = first_url_match(html, self.patterns, self.preferred)
        if url:
            return url
        return first_url_match(html, self.fallback_patterns)
