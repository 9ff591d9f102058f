from __future__ import annotations

from pathlib import Path


def _package_dir(package_name: str) -> Path:
    """
    Return the on-disk directory for an imported package.

    Note:
    This assumes the package is installed in a filesystem-backed environment
    (typical for pip/wheel installs and editable installs). If a zipimport-style
    environment is used, this may not be a real directory.
    """
    module = __import__(package_name, fromlist=["__file__"])
    p = getattr(module, "__file__", None)
    if not isinstance(p, str) or not p:
        raise RuntimeError(f"Cannot resolve package directory for: {package_name}")
    return Path(p).resolve().parent


def contracts_dir() -> Path:
    """
    Directory that contains shipped contract artifacts (JSON Schemas, examples).
    """
    return _package_dir("policygate") / "contracts"


def contracts_schemas_dir() -> Path:
    return contracts_dir() / "schemas"


def contracts_examples_dir() -> Path:
    return contracts_dir() / "examples"


def policy_config_schema_path() -> Path:
    return contracts_schemas_dir() / "policy_config.schema.json"
