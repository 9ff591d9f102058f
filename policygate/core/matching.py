from __future__ import annotations

from typing import List, Optional
from urllib.parse import urlsplit

WILDCARD_LABEL_PREFIX = "*."
RECURSIVE_PATH_SUFFIX = "/**"

_SINGLE_DOT = (".", "%2e")
_DOUBLE_DOT = ("..", ".%2e", "%2e.", "%2e%2e")
_DEFAULT_PORTS = {"http": 80, "https": 443}


def match_wildcard_label(pattern: str, candidate: str) -> bool:
    """
    Match a hostname/origin against a pattern with an optional leading wildcard label.

    - "example.com" matches only "example.com" (case-insensitive).
    - "*.example.com" matches "a.example.com" but neither "example.com"
      nor "a.b.example.com": the wildcard spans exactly one label.
    """
    if not pattern or not candidate:
        return False
    pattern = pattern.lower()
    candidate = candidate.lower()

    if not pattern.startswith(WILDCARD_LABEL_PREFIX):
        return candidate == pattern

    suffix = pattern[1:]  # ".example.com"
    if not candidate.endswith(suffix):
        return False
    label = candidate[: -len(suffix)]
    return bool(label) and "." not in label


def match_pathname(pattern: str, path: str) -> bool:
    # Paths are case-sensitive; "/**" anchors a prefix on a "/" boundary.
    if pattern.endswith(RECURSIVE_PATH_SUFFIX):
        prefix = pattern[: -len(RECURSIVE_PATH_SUFFIX)]
        return path == prefix or path.startswith(prefix + "/")
    return path == pattern


def origin_host(origin_header: Optional[str]) -> Optional[str]:
    """
    Reduce an Origin header to the host part compared against origin rules.

    Accepts both a serialized origin ("https://foo.csb.app") and a bare host
    ("foo.csb.app"). The opaque origin "null" and empty values yield None.
    """
    if not isinstance(origin_header, str):
        return None
    value = origin_header.strip()
    if not value or value.lower() == "null":
        return None
    if "://" in value:
        try:
            parts = urlsplit(value)
            hostname = parts.hostname
            port = parts.port
        except ValueError:
            return None
        if not hostname:
            return None
        if ":" in hostname:
            hostname = f"[{hostname}]"
        if port is None or port == _DEFAULT_PORTS.get(parts.scheme.lower()):
            return hostname
        return f"{hostname}:{port}"
    return value.lower()


def normalize_path(path: str) -> str:
    """
    Resolve "." and ".." segments (including %2e spellings) the way a fetcher would.

    "/photos/../private/a.jpg" -> "/private/a.jpg"; "/photos/./a.jpg" -> "/photos/a.jpg".
    Backslashes count as separators for http(s) URLs.
    """
    path = path.replace("\\", "/")
    if not path.startswith("/"):
        path = "/" + path
    segments = path.split("/")[1:]
    out: List[str] = []
    for i, seg in enumerate(segments):
        last = i == len(segments) - 1
        low = seg.lower()
        if low in _DOUBLE_DOT:
            if out:
                out.pop()
            if last:
                out.append("")
        elif low in _SINGLE_DOT:
            if last:
                out.append("")
        else:
            out.append(seg)
    return "/" + "/".join(out)
