from __future__ import annotations

import argparse
import json
import os
from pathlib import Path
from typing import Any, Dict

from policygate.contract_checks import validate_shipped_contracts
from policygate.core.config import PolicyConfig, load_policy_config
from policygate.core.errors import InvalidConfig, PolicyGateError
from policygate.core.guard import PolicyGuard
from policygate.core.policy_gate import Decision
from policygate.core.policy_store import PolicyStore
from policygate.core.runtime_context import RuntimeContext
from policygate.dispatch import action_status, image_status
from policygate.trace.replay import Replay

CONFIG_ENV = "POLICYGATE_CONFIG"


def _format_cli_error(e: Exception) -> str:
    """
    Print-friendly error formatting for CLI commands.
    - Always includes code/message (via __str__) when it's a PolicyGateError
    - Includes structured `data` payload when present
    """
    if isinstance(e, PolicyGateError) and isinstance(e.data, dict) and e.data:
        return str(e) + "\n" + json.dumps(e.data, ensure_ascii=False, indent=2)
    return str(e)


def _config_path(args: argparse.Namespace) -> Path:
    p = getattr(args, "config", None) or os.environ.get(CONFIG_ENV)
    if not isinstance(p, str) or not p.strip():
        raise InvalidConfig(code="config.not_found", message=f"pass --config or set ${CONFIG_ENV}")
    return Path(p)


def _guard(args: argparse.Namespace) -> PolicyGuard:
    store = PolicyStore.from_file(_config_path(args))
    trace_path = Path(args.trace) if getattr(args, "trace", None) else None
    return PolicyGuard(store, RuntimeContext(run_id=args.run_id, trace_path=trace_path))


def _decision_out(decision: Decision, status: int) -> Dict[str, Any]:
    return {
        "decision": decision.decision,
        "reason_codes": decision.reason_codes,
        "summary": decision.summary,
        "status": status,
        "data": decision.data,
    }


def _print_config(config: PolicyConfig, *, as_json: bool) -> None:
    d = config.to_dict()
    if as_json:
        print(json.dumps(d, ensure_ascii=False, indent=2))
        return
    print("Image remote patterns:")
    for r in d["image_rules"]:
        print("- {protocol}://{hostname}{pathname}".format(**r))
    print("Action origins:")
    for o in d["action_origin_rules"]:
        print(f"- {o}")
    print(f"Max action body: {d['max_action_body_bytes']} bytes ({d['size_units']})")
    print(f"Ignore build errors: {d['ignore_build_errors']}")


def cmd_validate_config(args: argparse.Namespace) -> int:
    try:
        load_policy_config(_config_path(args))
    except InvalidConfig as e:
        print(_format_cli_error(e))
        return 2
    print("OK")
    return 0


def cmd_show_config(args: argparse.Namespace) -> int:
    _print_config(load_policy_config(_config_path(args)), as_json=bool(args.json))
    return 0


def cmd_check_contracts(_args: argparse.Namespace) -> int:
    failures = validate_shipped_contracts()
    if failures:
        print("Contract validation failed:")
        for f in failures:
            print("- {}: {}".format(Path(f.example_path).name, f.error))
        return 1
    print("OK")
    return 0


def cmd_check_image(args: argparse.Namespace) -> int:
    decision = _guard(args).check_image(args.url)
    print(json.dumps(_decision_out(decision, image_status(decision)), ensure_ascii=False, indent=2))
    return 0 if decision.admitted else 1


def cmd_check_action(args: argparse.Namespace) -> int:
    if args.body_file:
        size = Path(args.body_file).stat().st_size
    elif args.size is not None:
        size = args.size
    else:
        size = 0
    decision = _guard(args).check_action(args.origin, size)
    print(json.dumps(_decision_out(decision, action_status(decision)), ensure_ascii=False, indent=2))
    return 0 if decision.admitted else 1


def cmd_show_trace(args: argparse.Namespace) -> int:
    replay = Replay(Path(args.trace))
    events = list(replay.iter_events())

    if args.event_type:
        events = [e for e in events if e.get("event_type") == args.event_type]

    if args.tail is not None and args.tail >= 0:
        events = events[-args.tail :]

    for e in events:
        print(json.dumps(e, ensure_ascii=False))
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="policygate", description="Remote image and server action policy gate")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_validate = sub.add_parser("validate-config", help="Load and validate a policy config")
    p_validate.add_argument("--config", help=f"Policy config path (YAML/JSON; default: ${CONFIG_ENV})")
    p_validate.set_defaults(func=cmd_validate_config)

    p_show = sub.add_parser("show-config", help="Print the effective policy config")
    p_show.add_argument("--config", help=f"Policy config path (YAML/JSON; default: ${CONFIG_ENV})")
    p_show.add_argument("--json", action="store_true", help="Output JSON")
    p_show.set_defaults(func=cmd_show_config)

    p_contracts = sub.add_parser("check-contracts", help="Validate shipped schemas and examples")
    p_contracts.set_defaults(func=cmd_check_contracts)

    p_image = sub.add_parser("check-image", help="Evaluate an image URL against remote patterns")
    p_image.add_argument("url", help="Absolute image URL")
    p_image.add_argument("--config", help=f"Policy config path (YAML/JSON; default: ${CONFIG_ENV})")
    p_image.add_argument("--trace", help="Trace output path (jsonl)")
    p_image.add_argument("--run-id", default="run_cli", help="Run ID for trace correlation")
    p_image.set_defaults(func=cmd_check_image)

    p_action = sub.add_parser("check-action", help="Evaluate a server action request (origin + body size)")
    p_action.add_argument("--origin", required=True, help="Origin header value (host or serialized origin)")
    p_action.add_argument("--size", type=int, help="Body size in bytes")
    p_action.add_argument("--body-file", help="Measure body size from this file")
    p_action.add_argument("--config", help=f"Policy config path (YAML/JSON; default: ${CONFIG_ENV})")
    p_action.add_argument("--trace", help="Trace output path (jsonl)")
    p_action.add_argument("--run-id", default="run_cli", help="Run ID for trace correlation")
    p_action.set_defaults(func=cmd_check_action)

    p_show_trace = sub.add_parser("show-trace", help="Show trace events from a JSONL file")
    p_show_trace.add_argument("--trace", required=True, help="Trace path (jsonl)")
    p_show_trace.add_argument("--event-type", help="Filter by event_type")
    p_show_trace.add_argument("--tail", type=int, help="Show only last N events")
    p_show_trace.set_defaults(func=cmd_show_trace)

    ns = parser.parse_args(argv)
    try:
        return int(ns.func(ns))
    except PolicyGateError as e:
        print(_format_cli_error(e))
        return 2
    except (OSError, ValueError) as e:
        print(_format_cli_error(e))
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
