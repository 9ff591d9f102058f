from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional
from urllib.parse import urlsplit

from .config import ActionOriginRule, PolicyConfig, RemotePatternRule
from .errors import MalformedURL, PolicyDenied
from .matching import match_pathname, match_wildcard_label, normalize_path, origin_host

ADMIT = "admit"
REJECT = "reject"

_DEFAULT_PORTS = {"http": 80, "https": 443}


class Reason(str, Enum):
    NO_MATCHING_REMOTE_PATTERN = "image.no_matching_remote_pattern"
    ORIGIN_NOT_ALLOWED = "action.origin_not_allowed"
    BODY_TOO_LARGE = "action.body_too_large"


@dataclass(frozen=True)
class Decision:
    decision: str  # admit|reject
    reasons: FrozenSet[Reason] = frozenset()
    summary: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def admitted(self) -> bool:
        return self.decision == ADMIT

    @property
    def reason_codes(self) -> list[str]:
        return sorted(r.value for r in self.reasons)


@dataclass(frozen=True)
class ImageRequest:
    url: str


@dataclass(frozen=True)
class ActionRequest:
    origin_header: Optional[str]
    body_byte_size: int


@dataclass(frozen=True)
class ParsedURL:
    protocol: str
    hostname: str
    port: str  # "" when absent or the scheme default
    path: str
    search: str  # "" or "?query"


def parse_image_url(url: str) -> ParsedURL:
    if not isinstance(url, str) or not url.strip():
        raise MalformedURL(code="image.malformed_url", message="Image URL must be a non-empty string")
    try:
        parts = urlsplit(url.strip())
        hostname = parts.hostname
        port = parts.port
    except ValueError as e:
        raise MalformedURL(code="image.malformed_url", message=f"Malformed image URL: {url}", data={"url": url}) from e
    if not parts.scheme or not hostname:
        raise MalformedURL(code="image.malformed_url", message=f"Image URL must be absolute: {url}", data={"url": url})

    protocol = parts.scheme.lower()
    if port is None or port == _DEFAULT_PORTS.get(protocol):
        port_str = ""
    else:
        port_str = str(port)
    return ParsedURL(
        protocol=protocol,
        hostname=hostname.lower(),
        port=port_str,
        path=normalize_path(parts.path or "/"),
        search="?" + parts.query if parts.query else "",
    )


def _rule_matches(rule: RemotePatternRule, url: ParsedURL) -> bool:
    if rule.protocol.lower() != url.protocol:
        return False
    if not match_wildcard_label(rule.hostname, url.hostname):
        return False
    if rule.port is not None and rule.port != url.port:
        return False
    if not match_pathname(rule.pathname, url.path):
        return False
    if rule.search is not None and rule.search != url.search:
        return False
    return True


def evaluate_image(request: ImageRequest, rules: Iterable[RemotePatternRule]) -> Decision:
    """
    Admit an image URL iff at least one remote pattern matches it.

    Raises MalformedURL when the URL is not a well-formed absolute URL.
    """
    url = parse_image_url(request.url)
    for rule in rules:
        if _rule_matches(rule, url):
            return Decision(
                decision=ADMIT,
                summary="Image URL matches a remote pattern",
                data={"url": request.url, "matched": {"protocol": rule.protocol, "hostname": rule.hostname, "pathname": rule.pathname}},
            )
    return Decision(
        decision=REJECT,
        reasons=frozenset({Reason.NO_MATCHING_REMOTE_PATTERN}),
        summary=f"No remote pattern allows: {request.url}",
        data={"url": request.url},
    )


def evaluate_action(request: ActionRequest, rules: Iterable[ActionOriginRule], max_bytes: int) -> Decision:
    """
    Admit an action request iff its origin matches a rule and its body fits the limit.

    Both checks always run, so a request failing both reports both reasons.
    """
    size = request.body_byte_size
    if isinstance(size, bool) or not isinstance(size, int) or size < 0:
        raise ValueError("body_byte_size must be a non-negative integer")

    reasons = set()
    summaries = []
    data: Dict[str, Any] = {"origin": request.origin_header, "body_byte_size": size, "max_body_bytes": max_bytes}

    host = origin_host(request.origin_header)
    if host is None or not any(match_wildcard_label(r.origin_pattern, host) for r in rules):
        reasons.add(Reason.ORIGIN_NOT_ALLOWED)
        summaries.append(f"Origin not allowed: {request.origin_header}")

    if size > max_bytes:
        reasons.add(Reason.BODY_TOO_LARGE)
        summaries.append(f"Body size {size} exceeds limit {max_bytes}")

    if reasons:
        return Decision(decision=REJECT, reasons=frozenset(reasons), summary="; ".join(summaries), data=data)
    return Decision(decision=ADMIT, summary="Action origin and body size allowed", data=data)


class PolicyGate:
    """
    Evaluates image and action requests against one immutable PolicyConfig.

    Holds no mutable state: any number of threads or tasks may share an instance.
    """

    def __init__(self, config: PolicyConfig):
        self._config = config

    @property
    def config(self) -> PolicyConfig:
        return self._config

    def evaluate_image(self, request: ImageRequest) -> Decision:
        return evaluate_image(request, self._config.image_rules)

    def evaluate_action(self, request: ActionRequest) -> Decision:
        return evaluate_action(request, self._config.action_origin_rules, self._config.max_action_body_bytes)

    def require_admit(self, decision: Decision) -> None:
        if not decision.admitted:
            raise PolicyDenied(
                code="policy.denied",
                message=decision.summary or "Denied by policy",
                data={"reasons": decision.reason_codes},
            )
