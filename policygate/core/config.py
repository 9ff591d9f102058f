from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from fractions import Fraction
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

import jsonschema
import yaml

from policygate.resources import policy_config_schema_path

from .errors import InvalidConfig
from .matching import RECURSIVE_PATH_SUFFIX, WILDCARD_LABEL_PREFIX

SIZE_UNITS_BINARY = "binary"
SIZE_UNITS_DECIMAL = "decimal"

DEFAULT_BODY_SIZE_LIMIT = "1mb"
DEFAULT_PATHNAME = "/**"

_SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(b|kb|mb|gb|tb)?\s*$", re.IGNORECASE)
_UNIT_POWER = {"b": 0, "kb": 1, "mb": 2, "gb": 3, "tb": 4}
_UNIT_BASE = {SIZE_UNITS_BINARY: 1024, SIZE_UNITS_DECIMAL: 1000}
# Signed 64-bit ceiling for a configured body limit.
MAX_BODY_SIZE_BYTES = 2 ** 63 - 1


@dataclass(frozen=True)
class RemotePatternRule:
    protocol: str  # http|https
    hostname: str
    pathname: str = DEFAULT_PATHNAME
    port: Optional[str] = None
    search: Optional[str] = None


@dataclass(frozen=True)
class ActionOriginRule:
    origin_pattern: str


@dataclass(frozen=True)
class PolicyConfig:
    """
    Process-wide rule set. Built once from static declarations and never mutated;
    a configuration change replaces the whole value.
    """

    image_rules: Tuple[RemotePatternRule, ...]
    action_origin_rules: FrozenSet[ActionOriginRule]
    max_action_body_bytes: int
    size_units: str = SIZE_UNITS_BINARY
    ignore_build_errors: bool = False

    def to_dict(self) -> Dict[str, Any]:
        rules: List[Dict[str, Any]] = []
        for r in self.image_rules:
            item: Dict[str, Any] = {"protocol": r.protocol, "hostname": r.hostname, "pathname": r.pathname}
            if r.port is not None:
                item["port"] = r.port
            if r.search is not None:
                item["search"] = r.search
            rules.append(item)
        return {
            "image_rules": rules,
            "action_origin_rules": sorted(r.origin_pattern for r in self.action_origin_rules),
            "max_action_body_bytes": self.max_action_body_bytes,
            "size_units": self.size_units,
            "ignore_build_errors": self.ignore_build_errors,
        }


def parse_byte_size(value: Any, units: str = SIZE_UNITS_BINARY) -> int:
    """
    Parse a body size declaration ("2mb", "512kb", 1048576) into a byte count.

    `units` selects the multiplier: binary (1kb = 1024) or decimal (1kb = 1000).
    Fractional results are floored. The result must be a positive integer
    no larger than MAX_BODY_SIZE_BYTES.
    """
    base = _UNIT_BASE.get(units)
    if base is None:
        raise InvalidConfig(code="config.invalid_size_units", message=f"Unknown size units: {units!r}", data={"size_units": units})

    if isinstance(value, bool):
        raise InvalidConfig(code="config.invalid_size", message="Body size limit must be an integer or size string", data={"value": value})
    if isinstance(value, int):
        n = value
    elif isinstance(value, str):
        m = _SIZE_RE.match(value)
        if m is None:
            raise InvalidConfig(code="config.invalid_size", message=f"Malformed body size limit: {value!r}", data={"value": value})
        number = Fraction(m.group(1))
        unit = (m.group(2) or "b").lower()
        n = int(math.floor(number * (base ** _UNIT_POWER[unit])))
    else:
        raise InvalidConfig(code="config.invalid_size", message="Body size limit must be an integer or size string", data={"value": repr(value)})

    if n <= 0:
        raise InvalidConfig(code="config.invalid_size", message="Body size limit must be positive", data={"value": value})
    if n > MAX_BODY_SIZE_BYTES:
        raise InvalidConfig(code="config.invalid_size", message="Body size limit is too large", data={"value": str(value)[:64]})
    return n


def _check_host_pattern(pattern: str, *, field: str) -> str:
    p = pattern.strip().lower()
    if not p:
        raise InvalidConfig(code="config.invalid_pattern", message=f"{field} must be non-empty")
    rest = p[len(WILDCARD_LABEL_PREFIX):] if p.startswith(WILDCARD_LABEL_PREFIX) else p
    # Only a single leading wildcard label is supported; "**." and inner "*" are not.
    if not rest or "*" in rest:
        raise InvalidConfig(
            code="config.invalid_pattern",
            message=f"{field} may only use a single leading '*.' wildcard label",
            data={"pattern": pattern},
        )
    return p


def _check_pathname(pathname: str) -> str:
    if not pathname.startswith("/"):
        raise InvalidConfig(code="config.invalid_pattern", message="pathname must start with '/'", data={"pathname": pathname})
    body = pathname[: -len(RECURSIVE_PATH_SUFFIX)] if pathname.endswith(RECURSIVE_PATH_SUFFIX) else pathname
    if "*" in body:
        raise InvalidConfig(
            code="config.invalid_pattern",
            message="pathname may only use '/**' as a trailing wildcard",
            data={"pathname": pathname},
        )
    return pathname


def _build_remote_pattern(obj: Dict[str, Any]) -> RemotePatternRule:
    port = obj.get("port")
    return RemotePatternRule(
        protocol=str(obj["protocol"]).lower(),
        hostname=_check_host_pattern(obj["hostname"], field="hostname"),
        pathname=_check_pathname(obj.get("pathname", DEFAULT_PATHNAME)),
        port=str(port) if port is not None else None,
        search=obj.get("search"),
    )


def validate_config_schema(raw: Any) -> None:
    schema_path = policy_config_schema_path()
    try:
        schema = json.loads(schema_path.read_text(encoding="utf-8"))
    except Exception as e:  # noqa: BLE001
        raise InvalidConfig(code="config.schema_missing", message="Config schema missing or unreadable", data={"path": str(schema_path)}) from e

    try:
        jsonschema.Draft202012Validator(schema).validate(raw)
    except jsonschema.ValidationError as e:
        raise InvalidConfig(
            code="config.schema_invalid",
            message="Config does not match schema",
            data={"error": e.message, "path": list(e.path), "schema_path": list(e.schema_path)},
        ) from e


def build_policy_config(raw: Any) -> PolicyConfig:
    """
    Validate a parsed declaration (mapping) and build the immutable PolicyConfig.

    Every failure raises InvalidConfig; there is no fallback to a permissive policy.
    """
    if not isinstance(raw, dict):
        raise InvalidConfig(code="config.invalid", message="Config must be a mapping/object at top-level")
    validate_config_schema(raw)

    images = raw.get("images") or {}
    actions = raw.get("server_actions") or {}
    typescript = raw.get("typescript") or {}

    image_rules = tuple(_build_remote_pattern(obj) for obj in images.get("remote_patterns") or [])
    origin_rules = frozenset(
        ActionOriginRule(origin_pattern=_check_host_pattern(p, field="allowed_origins entry"))
        for p in actions.get("allowed_origins") or []
    )
    size_units = actions.get("size_units", SIZE_UNITS_BINARY)
    max_bytes = parse_byte_size(actions.get("body_size_limit", DEFAULT_BODY_SIZE_LIMIT), size_units)

    return PolicyConfig(
        image_rules=image_rules,
        action_origin_rules=origin_rules,
        max_action_body_bytes=max_bytes,
        size_units=size_units,
        ignore_build_errors=bool(typescript.get("ignore_build_errors", False)),
    )


def load_policy_config(config_path: str | Path) -> PolicyConfig:
    """
    Load a YAML (or JSON) policy declaration from disk.
    """
    p = Path(config_path).expanduser()
    if not p.exists():
        raise InvalidConfig(code="config.not_found", message=f"Config not found: {config_path}")
    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise InvalidConfig(code="config.invalid_yaml", message="Failed to parse YAML config", data={"error": repr(e)}) from e
    return build_policy_config(raw)
