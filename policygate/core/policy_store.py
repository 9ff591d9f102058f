from __future__ import annotations

import threading
from pathlib import Path

from .config import PolicyConfig, load_policy_config
from .policy_gate import PolicyGate


class PolicyStore:
    """
    Holds the current PolicyConfig for the process.

    Invariants:
    - readers observe either the old or the new config in full (reference swap)
    - a failed reload leaves the previous config in place
    """

    def __init__(self, config: PolicyConfig):
        self._lock = threading.Lock()
        self._gate = PolicyGate(config)

    @classmethod
    def from_file(cls, config_path: str | Path) -> "PolicyStore":
        return cls(load_policy_config(config_path))

    def current(self) -> PolicyConfig:
        return self._gate.config

    def gate(self) -> PolicyGate:
        return self._gate

    def replace(self, config: PolicyConfig) -> PolicyConfig:
        """
        Swap in a new config; returns the one it replaced.
        """
        if not isinstance(config, PolicyConfig):
            raise TypeError("config must be a PolicyConfig")
        gate = PolicyGate(config)
        with self._lock:
            previous = self._gate.config
            self._gate = gate
        return previous

    def reload(self, config_path: str | Path) -> PolicyConfig:
        # Load fully before taking the lock; InvalidConfig propagates untouched.
        config = load_policy_config(config_path)
        self.replace(config)
        return config
