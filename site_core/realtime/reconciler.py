# =============================================================================
# site_core/realtime/reconciler.py
# Map Row Changes onto the Query Cache
# =============================================================================
"""
Reconciler - decides, per change event, between patching a cached list in
place and invalidating it.

- INSERT / DELETE: invalidate the list.
- UPDATE of a row already in the cached list, touching only patchable
  columns: patch that row, no refetch.
- Any other UPDATE: invalidate.

Events are not applied as a delta log. Arrival order across tables is not
guaranteed, so anything that is not a plain single-row patch re-derives the
list from the server.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional
import logging

from site_core.cache import QueryCache, QueryKey
from site_core.realtime.events import ChangeAction, ChangeEvent

logger = logging.getLogger(__name__)


class ReconcileAction(Enum):
    PATCH = "patch"
    INVALIDATE = "invalidate"
    IGNORE = "ignore"


@dataclass(frozen=True)
class ReconciliationRule:
    table: str
    query_key: QueryKey
    patchable_fields: FrozenSet[str] = field(default_factory=frozenset)
    id_field: str = "id"


class Reconciler:

    def __init__(self, query_cache: QueryCache, rules: Optional[Iterable[ReconciliationRule]] = None):
        self.query_cache = query_cache
        self._rules: Dict[str, ReconciliationRule] = {}
        for rule in rules or ():
            self.add_rule(rule)

    def add_rule(self, rule: ReconciliationRule) -> None:
        self._rules[rule.table] = rule

    def remove_rule(self, table: str) -> None:
        self._rules.pop(table, None)

    def rule_for(self, table: str) -> Optional[ReconciliationRule]:
        return self._rules.get(table)

    def classify(self, event: ChangeEvent) -> ReconcileAction:
        rule = self._rules.get(event.table)
        if rule is None:
            return ReconcileAction.IGNORE
        if event.action != ChangeAction.UPDATE or not event.new:
            return ReconcileAction.INVALIDATE

        cached = self.query_cache.find_record(rule.query_key, event.new.get(rule.id_field), rule.id_field)
        if cached is None:
            return ReconcileAction.INVALIDATE

        changed = {k for k, v in event.new.items() if cached.get(k) != v}
        if changed <= rule.patchable_fields:
            return ReconcileAction.PATCH
        return ReconcileAction.INVALIDATE

    def handle(self, event: ChangeEvent) -> ReconcileAction:
        """Apply the classified action to the query cache."""
        action = self.classify(event)
        rule = self._rules.get(event.table)

        if action == ReconcileAction.PATCH:
            self.query_cache.patch_record(rule.query_key, event.new, rule.id_field)
            logger.debug(f"Patched {event.table} row {event.record_id(rule.id_field)} in place")
        elif action == ReconcileAction.INVALIDATE:
            self.query_cache.invalidate(rule.query_key)
            logger.debug(f"{event.table} {event.action.value}: invalidated {rule.query_key}")
        else:
            logger.debug(f"No reconciliation rule for table {event.table}")

        return action
