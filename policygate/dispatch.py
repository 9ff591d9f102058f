from __future__ import annotations

from typing import Any, Dict

from policygate.core.policy_gate import Decision, Reason

STATUS_OK = 200
STATUS_BAD_REQUEST = 400
STATUS_FORBIDDEN = 403
STATUS_PAYLOAD_TOO_LARGE = 413


def image_status(decision: Decision) -> int:
    """
    Status an image pipeline should return for a decision (refuse, never fetch).
    """
    return STATUS_OK if decision.admitted else STATUS_BAD_REQUEST


def action_status(decision: Decision) -> int:
    """
    Status an action dispatcher should return for a decision.

    A cross-origin request is refused as forbidden even when its body is also
    too large; payload-too-large is reported only for allowed origins.
    """
    if decision.admitted:
        return STATUS_OK
    if Reason.ORIGIN_NOT_ALLOWED in decision.reasons:
        return STATUS_FORBIDDEN
    if Reason.BODY_TOO_LARGE in decision.reasons:
        return STATUS_PAYLOAD_TOO_LARGE
    return STATUS_FORBIDDEN


def error_body(decision: Decision) -> Dict[str, Any]:
    return {
        "error": {
            "code": "policy.denied",
            "message": decision.summary or "Denied by policy",
            "reasons": decision.reason_codes,
        }
    }
