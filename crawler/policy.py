"""
Centralized URL policy: canonicalization and crawlability.

All extension and same-site rules live here. The frontier and the
orchestrator import these helpers instead of parsing URLs themselves.

Canonical form (the dedup key):
- resolved against the base URL
- scheme and host lowercased, default ports dropped
- no fragment
- no trailing slash on the path
- no leading "www." on the host
"""

from threading import Lock
from typing import Dict, Optional, Tuple
from urllib.parse import urljoin, urlparse, urlunparse

ALLOWED_SCHEMES = ("http", "https")
DEFAULT_PORTS = {"http": 80, "https": 443}


def _strip_www(host: str) -> str:
    return host[4:] if host.startswith("www.") else host


def canonicalize(raw: str, base: Optional[str] = None) -> Optional[str]:
    """
    Return the canonical form of raw (resolved against base), or None when
    the URL is malformed, not http(s), or has no host. None means "do not enqueue".
    """
    if not raw or not isinstance(raw, str):
        return None
    raw = raw.strip()
    if not raw:
        return None

    try:
        joined = urljoin(base, raw) if base else raw
        parsed = urlparse(joined)
        scheme = parsed.scheme.lower()
        if scheme not in ALLOWED_SCHEMES:
            return None
        host = parsed.hostname
        port = parsed.port
    except ValueError:
        # urlparse raises on bad ports and unbalanced IPv6 brackets
        return None

    if not host:
        return None

    host = _strip_www(host.lower())
    if not host:
        return None
    if ":" in host:
        host = f"[{host}]"
    netloc = host if port is None or port == DEFAULT_PORTS[scheme] else f"{host}:{port}"

    path = parsed.path.rstrip("/")

    return urlunparse((scheme, netloc, path, parsed.params, parsed.query, ""))


def origin_host(url: str) -> Optional[str]:
    """Host of url after www. stripping, or None for an invalid URL."""
    canonical = canonicalize(url)
    if canonical is None:
        return None
    return urlparse(canonical).hostname


class URLPolicy:
    """
    Central policy for deciding which discovered links are worth a browser visit.

    Methods:
    - is_asset(url): True for image/style/script/archive/document/media/font paths
    - is_same_site(url, base): host equality after www. stripping
    - eval(url, base): (allowed, reason), updates counters
    """

    # Non-HTML extensions, matched case-insensitively against the end of the path
    ASSET_EXTENSIONS = (
        # Images
        ".jpg", ".jpeg", ".png", ".gif", ".svg", ".webp", ".ico", ".bmp", ".tiff", ".avif",
        # Styles/Scripts/Data
        ".css", ".js", ".mjs", ".map", ".json", ".xml",
        # Archives
        ".zip", ".rar", ".tar", ".gz", ".7z",
        # Documents
        ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx", ".csv",
        # Video/Audio
        ".mp4", ".mp3", ".avi", ".mov", ".mkv", ".webm", ".wav",
        # Fonts
        ".woff", ".woff2", ".ttf", ".eot",
        # Executables/Installers
        ".exe", ".msi", ".dmg",
    )

    _lock: Lock = Lock()
    _stats: Dict[str, int] = {
        "evaluations": 0,
        "allowed": 0,
        "blocked_invalid": 0,
        "blocked_asset": 0,
        "blocked_off_site": 0,
    }

    @classmethod
    def is_asset(cls, url: str) -> bool:
        try:
            path = urlparse(url).path.lower()
        except ValueError:
            return False
        return path.endswith(cls.ASSET_EXTENSIONS)

    @staticmethod
    def is_same_site(url: str, base: str) -> bool:
        url_host = origin_host(url)
        return url_host is not None and url_host == origin_host(base)

    @classmethod
    def eval(cls, raw: str, base: str) -> Tuple[bool, str]:
        """
        Evaluate raw (resolved against base) and return (allowed, reason).
        Reasons are the stats keys: 'allowed', 'blocked_invalid', 'blocked_asset',
        'blocked_off_site'.
        """
        canonical = canonicalize(raw, base)
        if canonical is None:
            reason = "blocked_invalid"
        elif cls.is_asset(canonical):
            reason = "blocked_asset"
        elif not cls.is_same_site(canonical, base):
            reason = "blocked_off_site"
        else:
            reason = "allowed"

        with cls._lock:
            cls._stats["evaluations"] += 1
            cls._stats[reason] += 1
        return reason == "allowed", reason

    @classmethod
    def get_stats(cls) -> Dict[str, int]:
        with cls._lock:
            return dict(cls._stats)

    @classmethod
    def reset_stats(cls) -> None:
        with cls._lock:
            for k in cls._stats:
                cls._stats[k] = 0


def is_crawlable(raw: str, base: str) -> bool:
    """Same-site, well-formed, and not a known non-HTML resource."""
    allowed, _ = URLPolicy.eval(raw, base)
    return allowed
