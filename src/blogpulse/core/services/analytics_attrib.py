"""
AttributionService - referrer and hint attribution.

Maps a beacon's (referrer, hint, site origin) onto one of six canonical
traffic sources.

Key behaviors:
- Explicit hints (?src=ig, utm_source=instagram) win, but only on the first
  view of a session
- Empty referrer on a first view is direct
- Referrer host matched against a platform table (subdomains included)
- Same-site referrer is direct (internal navigation)
- Everything else is other, raw referrer preserved
- Malformed input never raises; it degrades to other
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import urlsplit

from blogpulse.core.entities import SourceCategory

MAX_HINT_LENGTH = 64

# --- Configuration ---


@dataclass(frozen=True)
class AttributionConfig:
    """Attribution configuration."""

    # Hint value -> category
    hint_aliases: tuple[tuple[str, SourceCategory], ...] = (
        ("ig", SourceCategory.INSTAGRAM),
        ("insta", SourceCategory.INSTAGRAM),
        ("instagram", SourceCategory.INSTAGRAM),
        ("fb", SourceCategory.FACEBOOK),
        ("facebook", SourceCategory.FACEBOOK),
        ("yt", SourceCategory.YOUTUBE),
        ("youtube", SourceCategory.YOUTUBE),
        ("google", SourceCategory.GOOGLE),
        ("goog", SourceCategory.GOOGLE),
    )

    # Referrer host patterns; "name.*" matches any TLD
    platform_domains: tuple[tuple[str, SourceCategory], ...] = (
        ("instagram.com", SourceCategory.INSTAGRAM),
        ("facebook.com", SourceCategory.FACEBOOK),
        ("fb.com", SourceCategory.FACEBOOK),
        ("youtube.com", SourceCategory.YOUTUBE),
        ("youtu.be", SourceCategory.YOUTUBE),
        ("google.*", SourceCategory.GOOGLE),
    )

    site_origin: str | None = None


DEFAULT_CONFIG = AttributionConfig()

_PLATFORM_NAMES = (
    SourceCategory.INSTAGRAM,
    SourceCategory.FACEBOOK,
    SourceCategory.YOUTUBE,
    SourceCategory.GOOGLE,
)


# --- Data Models ---


@dataclass(frozen=True)
class Attribution:
    """Full attribution result."""

    source: SourceCategory
    referrer: str | None = None
    referrer_host: str | None = None
    used_hint: bool = False


# --- Parsing Functions ---


def parse_host(url: str | None) -> str | None:
    """
    Extract the lowercase host of a URL.

    Scheme-less values ("google.com/search") are accepted. Returns None
    for empty or unparseable input.
    """
    if not url:
        return None

    value = url.strip()
    if not value:
        return None
    if "://" not in value and not value.startswith("//"):
        value = "//" + value

    try:
        host = urlsplit(value).hostname
    except ValueError:
        return None

    if not host:
        return None
    return host.lower().rstrip(".")


def strip_www(host: str) -> str:
    return host[4:] if host.startswith("www.") else host


def normalize_hint(hint: str | None) -> str | None:
    """
    Normalize an explicit source hint.

    Accepts raw values ("ig") and key=value fragments ("utm_source=ig");
    the value after the last "=" is used.
    """
    if not hint or not isinstance(hint, str):
        return None

    value = hint.strip()[:MAX_HINT_LENGTH].lower()
    if "=" in value:
        value = value.rsplit("=", 1)[1]
    value = value.strip()
    return value or None


def match_hint(
    hint: str | None,
    config: AttributionConfig = DEFAULT_CONFIG,
) -> SourceCategory | None:
    """Resolve a hint to a platform, or None when it is not recognized."""
    value = normalize_hint(hint)
    if value is None:
        return None

    for alias, category in config.hint_aliases:
        if value == alias:
            return category

    # instagram_story, facebook-ads ...
    for category in _PLATFORM_NAMES:
        if category.value in value:
            return category

    return None


def _host_matches(host: str, pattern: str) -> bool:
    if pattern.endswith(".*"):
        base = re.escape(pattern[:-2])
        return re.search(rf"(^|\.){base}\.[a-z]{{2,3}}(\.[a-z]{{2}})?$", host) is not None
    return host == pattern or host.endswith("." + pattern)


def match_platform(
    host: str | None,
    config: AttributionConfig = DEFAULT_CONFIG,
) -> SourceCategory | None:
    """Match a referrer host against the platform table."""
    if not host:
        return None

    for pattern, category in config.platform_domains:
        if _host_matches(host, pattern):
            return category
    return None


def is_same_site(host: str | None, origin: str | None) -> bool:
    """Check whether a referrer host belongs to the site itself."""
    if not host or not origin:
        return False
    origin_host = parse_host(origin)
    if not origin_host:
        return False
    return strip_www(host) == strip_www(origin_host)


def attribute(
    referrer: str | None,
    hint: str | None,
    origin: str | None,
    first_view: bool = True,
    config: AttributionConfig = DEFAULT_CONFIG,
) -> Attribution:
    """
    Attribute a beacon to a traffic source.

    Priority:
    1. Recognized hint on a first view
    2. Empty referrer on a first view -> direct
    3. Platform referrer host
    4. Same-site referrer -> direct
    5. other
    """
    raw = referrer.strip() if isinstance(referrer, str) else None
    raw = raw or None

    if first_view:
        hinted = match_hint(hint, config)
        if hinted is not None:
            return Attribution(source=hinted, referrer=raw, used_hint=True)

        if raw is None:
            return Attribution(source=SourceCategory.DIRECT)

    host = parse_host(raw)

    platform = match_platform(host, config)
    if platform is not None:
        return Attribution(source=platform, referrer=raw, referrer_host=host)

    if is_same_site(host, origin or config.site_origin):
        return Attribution(source=SourceCategory.DIRECT, referrer=raw, referrer_host=host)

    return Attribution(source=SourceCategory.OTHER, referrer=raw, referrer_host=host)


def classify(
    referrer: str | None,
    hint: str | None,
    origin: str | None,
    first_view: bool = True,
    config: AttributionConfig = DEFAULT_CONFIG,
) -> SourceCategory:
    """Classify a beacon; see attribute()."""
    return attribute(referrer, hint, origin, first_view, config).source


# --- Attribution Service ---


class AttributionService:
    """
    Attribution service.

    Stateless wrapper binding a configuration (aliases, platform table,
    default site origin).
    """

    def __init__(
        self,
        config: AttributionConfig | None = None,
    ) -> None:
        """Initialize service."""
        self._config = config or DEFAULT_CONFIG

    @property
    def config(self) -> AttributionConfig:
        return self._config

    def classify(
        self,
        referrer: str | None,
        hint: str | None,
        origin: str | None = None,
        first_view: bool = True,
    ) -> SourceCategory:
        """Classify traffic source."""
        return classify(referrer, hint, origin, first_view, self._config)

    def attribute(
        self,
        referrer: str | None,
        hint: str | None,
        origin: str | None = None,
        first_view: bool = True,
    ) -> Attribution:
        """Full attribution, including the parsed referrer host."""
        return attribute(referrer, hint, origin, first_view, self._config)


# --- Factory ---


def create_attribution_service(
    config: AttributionConfig | None = None,
) -> AttributionService:
    """Create an AttributionService."""
    return AttributionService(config=config)
