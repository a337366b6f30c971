"""
Subscription plan gating: usage limits checked before an action runs.
"""

from .limit_gate import LIMIT_KINDS, LimitCheck, LimitGate, LimitKind

__all__ = ["LIMIT_KINDS", "LimitCheck", "LimitGate", "LimitKind"]
