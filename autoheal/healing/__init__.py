"""Automated remediation.

Submodules:
    actions -- ActionRequest/ActionResult, the ActionExecutor boundary and its dry-run implementation.
    rules   -- RuleRegistry (CRUD over HealingRule) and the bounded HealingEventLog.
    engine  -- HealingEngine: eligibility, dispatch, outcome recording.
"""

from autoheal.healing.actions import (
    ActionExecutor,
    ActionRequest,
    ActionResult,
    DryRunActionExecutor,
    describe_action,
    parse_action_type,
)
from autoheal.healing.engine import HealingEngine
from autoheal.healing.rules import HealingEventLog, RuleRegistry, default_rules

__all__ = [
    "ActionExecutor",
    "ActionRequest",
    "ActionResult",
    "DryRunActionExecutor",
    "HealingEngine",
    "HealingEventLog",
    "RuleRegistry",
    "default_rules",
    "describe_action",
    "parse_action_type",
]
