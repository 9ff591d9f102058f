from __future__ import annotations

from typing import Any, Dict, Optional

from policygate.trace.trace_emitter import TraceEmitter
from policygate.trace.trace_store_jsonl import TraceStoreJSONL

from .errors import MalformedURL
from .policy_gate import ActionRequest, Decision, ImageRequest
from .policy_store import PolicyStore
from .runtime_context import RuntimeContext


def _policy_payload(decision: Decision) -> Dict[str, Any]:
    return {"decision": decision.decision, "reason_codes": decision.reason_codes, "summary": decision.summary}


class PolicyGuard:
    """
    Collaborator-facing gate: Request -> Policy -> Trace.

    Hard rules:
    - every evaluation reads one complete config from the store
    - every decision is traced (when tracing is enabled)
    - deny-by-default: require_admit raises unless the decision is admit
    """

    def __init__(self, store: PolicyStore, ctx: RuntimeContext):
        self._store = store
        self._trace: Optional[TraceEmitter] = None
        if ctx.trace_path is not None:
            self._trace = TraceEmitter(store=TraceStoreJSONL(ctx.trace_path), run_id=ctx.run_id)

    def _emit(self, event_type: str, **kwargs: Any) -> None:
        if self._trace is not None:
            self._trace.emit(event_type, **kwargs)

    def check_image(self, url: str) -> Decision:
        gate = self._store.gate()
        try:
            decision = gate.evaluate_image(ImageRequest(url=url))
        except MalformedURL as e:
            self._emit("error", subject="image", message=e.message, data={"code": e.code, "url": url})
            raise
        self._emit("policy_decision", subject="image", policy=_policy_payload(decision), data=decision.data)
        return decision

    def check_action(self, origin_header: Optional[str], body_byte_size: int) -> Decision:
        gate = self._store.gate()
        decision = gate.evaluate_action(ActionRequest(origin_header=origin_header, body_byte_size=body_byte_size))
        self._emit("policy_decision", subject="action", policy=_policy_payload(decision), data=decision.data)
        return decision

    def require_admit(self, decision: Decision) -> Decision:
        if not decision.admitted:
            self._emit("request_denied", message=decision.summary or "Denied by policy", policy=_policy_payload(decision))
        self._store.gate().require_admit(decision)
        return decision
