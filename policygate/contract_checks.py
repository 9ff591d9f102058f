from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List

import jsonschema
import yaml

from policygate.core.config import build_policy_config
from policygate.core.errors import PolicyGateError
from policygate.resources import contracts_examples_dir, contracts_schemas_dir


@dataclass(frozen=True)
class ContractFailure:
    schema_path: str
    example_path: str
    error: str


def _read_instance(path: Path) -> Any:
    if path.suffix.lower() in (".yml", ".yaml"):
        return yaml.safe_load(path.read_text(encoding="utf-8"))
    if path.suffix.lower() == ".json":
        return json.loads(path.read_text(encoding="utf-8"))
    raise ValueError(f"Unsupported example extension: {path.name}")


def discover_contract_pairs(schemas_dir: Path, examples_dir: Path) -> List[tuple[Path, Path]]:
    """
    Pair "<base>.schema.json" with "<base>.example.(yml|yaml|json)".
    """
    pairs: List[tuple[Path, Path]] = []
    for schema_path in sorted(schemas_dir.glob("*.schema.json"), key=lambda p: p.name):
        base = schema_path.name[: -len(".schema.json")]
        for ext in ("yml", "yaml", "json"):
            cand = examples_dir / f"{base}.example.{ext}"
            if cand.exists():
                pairs.append((schema_path, cand))
                break
    return pairs


def validate_shipped_contracts(
    schemas_dir: Path | None = None,
    examples_dir: Path | None = None,
) -> List[ContractFailure]:
    """
    Check each shipped schema and its example; the policy config example must
    also build into a PolicyConfig. Returns failures (empty == OK).
    """
    schemas_dir = schemas_dir or contracts_schemas_dir()
    examples_dir = examples_dir or contracts_examples_dir()
    failures: List[ContractFailure] = []
    for schema_path, example_path in discover_contract_pairs(schemas_dir, examples_dir):
        try:
            schema: Dict[str, Any] = json.loads(schema_path.read_text(encoding="utf-8"))
            jsonschema.Draft202012Validator.check_schema(schema)
            instance = _read_instance(example_path)
            jsonschema.Draft202012Validator(schema).validate(instance)
            if schema_path.name == "policy_config.schema.json":
                build_policy_config(instance)
        except (jsonschema.SchemaError, jsonschema.ValidationError, PolicyGateError, ValueError, yaml.YAMLError) as e:
            failures.append(ContractFailure(schema_path=str(schema_path), example_path=str(example_path), error=repr(e)))
    return failures
