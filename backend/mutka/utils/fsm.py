from __future__ import annotations
"""Simple finite state machine utility for enforcing allowed status transitions.

Guards the deal lifecycles (AutoDeal, FinanceDeal); `states()` feeds the x-transitions
extension of the generated OpenAPI document.
Usage:
    from mutka.utils.fsm import TransitionValidator
    DEAL_FSM = TransitionValidator({
        'NEW': {'ACTIVE', 'CANCELLED'},
        'ACTIVE': {'CLOSED'},
        'CLOSED': set(),
    })
    DEAL_FSM.assert_can_transition(current_status, target_status)

Raises 400 abort if invalid.
"""
from typing import Dict, Set, List
from flask import abort

class TransitionValidator:
    def __init__(self, graph: Dict[str, Set[str]], field_name: str = 'status'):
        self.graph = graph
        self.field_name = field_name

    def can_transition(self, current: str, target: str) -> bool:
        return target in self.graph.get(current, set())

    def assert_can_transition(self, current: str, target: str):
        if not self.can_transition(current, target):
            abort(400, description=f"Invalid {self.field_name} transition {current} -> {target}")
        return True

    def states(self) -> List[str]:
        # Declaration order, for documentation
        return list(self.graph.keys())

__all__ = ['TransitionValidator']
