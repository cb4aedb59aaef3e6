from __future__ import annotations
"""Finite state machine helper for forward-only status lifecycles.

Usage:
    from fieldops.utils.fsm import TransitionValidator
    DEVICE_FSM = TransitionValidator({
        'operational': {'maintenance'},
        'maintenance': {'operational'},
    })
    DEVICE_FSM.assert_can_transition(current_status, target_status)

Raises 400 abort if invalid.
"""
from typing import Dict, Set, FrozenSet
from flask import abort


class TransitionValidator:
    def __init__(self, graph: Dict[str, Set[str]], field_name: str = 'status'):
        self.graph = {k: frozenset(v) for k, v in graph.items()}
        self.field_name = field_name

    def allowed_targets(self, current: str) -> FrozenSet[str]:
        return self.graph.get(current, frozenset())

    def can_transition(self, current: str, target: str) -> bool:
        return target in self.allowed_targets(current)

    def assert_can_transition(self, current: str, target: str):
        if not self.can_transition(current, target):
            abort(400, description=f"Invalid {self.field_name} transition {current} -> {target}")
        return True

    def is_terminal(self, status: str) -> bool:
        return not self.allowed_targets(status)

__all__ = ['TransitionValidator']
