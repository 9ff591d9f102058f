from .config import ActionOriginRule, PolicyConfig, RemotePatternRule, load_policy_config, parse_byte_size
from .errors import InvalidConfig, MalformedURL, PolicyDenied, PolicyGateError
from .policy_gate import ActionRequest, Decision, ImageRequest, PolicyGate, Reason, evaluate_action, evaluate_image
from .policy_store import PolicyStore
from .guard import PolicyGuard
from .runtime_context import RuntimeContext

__all__ = [
  "ActionOriginRule",
  "PolicyConfig",
  "RemotePatternRule",
  "load_policy_config",
  "parse_byte_size",
  "InvalidConfig",
  "MalformedURL",
  "PolicyDenied",
  "PolicyGateError",
  "ActionRequest",
  "Decision",
  "ImageRequest",
  "PolicyGate",
  "Reason",
  "evaluate_action",
  "evaluate_image",
  "PolicyStore",
  "PolicyGuard",
  "RuntimeContext",
]
