"""Alert rules, the alert engine and remediation dispatch."""

from pulsewatch.alerts.engine import DEFAULT_SEVERITY_COOLDOWNS, AlertCallback, AlertEngine
from pulsewatch.alerts.remediation import RemediationAction, RemediationDispatcher
from pulsewatch.alerts.rules import (
    AlertRule,
    RuleCondition,
    rule_from_config,
    rules_from_config,
    threshold_condition,
)

__all__ = [
    "DEFAULT_SEVERITY_COOLDOWNS",
    "AlertCallback",
    "AlertEngine",
    "AlertRule",
    "RemediationAction",
    "RemediationDispatcher",
    "RuleCondition",
    "rule_from_config",
    "rules_from_config",
    "threshold_condition",
]
