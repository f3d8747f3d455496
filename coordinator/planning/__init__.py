"""
Planning Module
===============

Plan ingestion, dependency resolution, validation and multi-pass planning.

Main Components:
- DependencyResolver: layered execution order and structural findings
- PlanValidator: aggregates errors, warnings and info into a ValidationResult
- MultiPassResumer: resumable collection of candidate plans and evaluator trigger

Usage:
    from coordinator.planning import parse_plan_from_file, validate_plan

    plan = parse_plan_from_file(".claudio-plan.json")
    result = validate_plan(plan)
"""

from coordinator.planning.models import (
    PlanSpec,
    PlannedTask,
    TaskComplexity,
    UltraPlanPhase,
    UltraPlanSession,
    ValidationResult,
)
from coordinator.planning.dependency_resolver import DependencyResolver, ensure_plan_computed
from coordinator.planning.plan_parser import parse_plan_from_file, parse_plan_from_output
from coordinator.planning.validator import PlanValidator, validate_plan
from coordinator.planning.multipass import MultiPassResumer, MultiPassResumeDeps, ResumeOutcome

__all__ = [
    'PlanSpec',
    'PlannedTask',
    'TaskComplexity',
    'UltraPlanPhase',
    'UltraPlanSession',
    'ValidationResult',
    'DependencyResolver',
    'ensure_plan_computed',
    'parse_plan_from_file',
    'parse_plan_from_output',
    'PlanValidator',
    'validate_plan',
    'MultiPassResumer',
    'MultiPassResumeDeps',
    'ResumeOutcome',
]
