#!/usr/bin/env python3
"""
Validate a Plan File

Checks a planner's plan JSON for structural errors (empty plan, duplicate
IDs, self or unknown dependencies, cycles) and scheduling hazards (files
shared by parallel tasks, high-complexity tasks).

Usage:
    python scripts/validate_plan.py                       # validates .claudio-plan.json
    python scripts/validate_plan.py my-plan.json
    python scripts/validate_plan.py --json my-plan.json   # machine-readable output

Exit codes:
    0 - Plan is valid (may have warnings)
    1 - Plan has errors or could not be parsed
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv
load_dotenv()

from coordinator.config import load_config
from coordinator.errors import PlanParseError
from coordinator.planning.plan_parser import parse_plan_json
from coordinator.planning.validator import format_validation_report, validate_plan


def _failure(file_path: str, parse_error: str) -> Dict[str, Any]:
    return {
        "valid": False,
        "file_path": file_path,
        "error_count": 0,
        "warning_count": 0,
        "info_count": 0,
        "messages": [],
        "parse_error": parse_error,
    }


def run_validate(file_path: str, as_json: bool = False, out=None) -> int:
    """
    Validate a plan file and print the report.

    Args:
        file_path: Plan file to validate
        as_json: Print the JSON report instead of the human one
        out: Stream to print to (default stdout)

    Returns:
        Process exit code
    """
    out = out or sys.stdout
    path = Path(file_path)
    parse_error: Optional[str] = None
    plan = None

    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        parse_error = f"file not found: {file_path}"
    except PermissionError:
        parse_error = f"permission denied: {file_path}"
    except OSError as e:
        parse_error = f"cannot access file: {file_path}: {e}"
    else:
        try:
            plan = parse_plan_json(text, require_tasks=False)
        except PlanParseError as e:
            parse_error = f"failed to parse plan: {e}"

    if parse_error is not None:
        if as_json:
            print(json.dumps(_failure(file_path, parse_error), indent=2), file=out)
        else:
            print(f"Error: {parse_error}", file=out)
        return 1

    result = validate_plan(plan)

    if as_json:
        report = result.to_dict()
        report["file_path"] = file_path
        print(json.dumps(report, indent=2), file=out)
    else:
        print(format_validation_report(file_path, plan, result), file=out)
        if not result.is_valid:
            print(f"plan validation failed with {result.error_count} error(s)", file=out)

    return 0 if result.is_valid else 1


def main():
    config = load_config()
    logging.basicConfig(level=config.log_level)

    parser = argparse.ArgumentParser(description="Validate a plan JSON file")
    parser.add_argument(
        'plan_file',
        nargs='?',
        default=config.plan_file_name,
        help=f'Plan file to validate (default: {config.plan_file_name})'
    )
    parser.add_argument('--json', action='store_true', help='Output validation result as JSON')
    args = parser.parse_args()

    sys.exit(run_validate(args.plan_file, as_json=args.json))


if __name__ == "__main__":
    main()
