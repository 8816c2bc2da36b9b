"""Alert rules — named conditions evaluated against a metric snapshot."""

from __future__ import annotations

import operator
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pulsewatch.core.config import ThresholdRuleConfig
from pulsewatch.core.types import Severity
from pulsewatch.metrics.store import Snapshot

RuleCondition = Callable[[Snapshot], bool]

_COMPARATORS: dict[str, Callable[[Any, Any], bool]] = {
    "gt": operator.gt,
    "ge": operator.ge,
    "lt": operator.lt,
    "le": operator.le,
    "eq": operator.eq,
    "ne": operator.ne,
}


@dataclass(frozen=True)
class AlertRule:
    """A declarative alert rule.

    ``cooldown_secs`` of None means "use the engine's default for this
    severity".
    """

    name: str
    condition: RuleCondition
    severity: Severity = Severity.MEDIUM
    cooldown_secs: float | None = None
    description: str = ""


def threshold_condition(
    field: str,
    op: str,
    value: float | bool | None = None,
) -> RuleCondition:
    """Build a condition comparing the dotted *field* of a snapshot.

    A field missing from the snapshot never triggers the rule.
    """
    if op in ("is_false", "is_true"):
        expected = op == "is_true"

        def _bool_condition(snapshot: Snapshot) -> bool:
            current = snapshot.value(field)
            if current is None:
                return False
            return bool(current) is expected

        return _bool_condition

    compare = _COMPARATORS.get(op)
    if compare is None:
        raise ValueError(f"unknown comparison operator {op!r}")
    if value is None:
        raise ValueError(f"operator {op!r} requires a value")

    def _condition(snapshot: Snapshot) -> bool:
        current = snapshot.value(field)
        if current is None:
            return False
        return compare(current, value)

    return _condition


def rule_from_config(config: ThresholdRuleConfig) -> AlertRule:
    """Build an AlertRule from a configured threshold rule."""
    if config.op in ("is_false", "is_true"):
        description = f"{config.field} {config.op}"
    else:
        description = f"{config.field} {config.op} {config.value}"
    return AlertRule(
        name=config.name,
        condition=threshold_condition(config.field, config.op, config.value),
        severity=config.severity,
        cooldown_secs=config.cooldown_secs,
        description=description,
    )


def rules_from_config(configs: list[ThresholdRuleConfig]) -> list[AlertRule]:
    """Build one AlertRule per configured threshold rule."""
    return [rule_from_config(c) for c in configs]
