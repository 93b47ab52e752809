"""
Reporting and export utilities.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence

import pandas as pd

from .analyzer import DependentsResult
from .models import Problem


logger = logging.getLogger(__name__)

COLUMNS = ["kind", "subject", "related", "source_component", "scope"]


def problems_to_frame(problems: Sequence[Problem]) -> pd.DataFrame:
    rows = [
        {
            "kind": p.kind.value,
            "subject": p.subject,
            "related": " ".join(p.related),
            "source_component": p.source_component or "",
            "scope": "" if p.scope is None else p.scope.value,
        }
        for p in problems
    ]
    return pd.DataFrame(rows, columns=COLUMNS)


def summarize(problems: Sequence[Problem]) -> pd.Series:
    """Problem counts per kind, in order of first appearance."""
    df = problems_to_frame(problems)
    return df.groupby("kind", sort=False).size()


def print_problems(problems: Sequence[Problem]) -> None:
    logger.info("=" * 60)
    logger.info("PROBLEMS")
    logger.info("=" * 60)
    if not problems:
        logger.info("No problems found")
        return
    for kind, count in summarize(problems).items():
        logger.info("%-24s %d", kind, count)
    logger.info("-" * 60)
    for problem in problems:
        logger.info("%s", problem.describe())
    logger.info("=" * 60)


def print_dependents(result: DependentsResult, components_path: Optional[Path] = None) -> None:
    if not result.found:
        logger.info("No dependents found for %s", result.fmri)
        return
    logger.info(
        "%s is needed by %d packages and %d components",
        result.fmri,
        len(result.packages),
        len(result.components),
    )
    for name in result.packages:
        logger.info("  package   %s", name)
    for path in result.components:
        shown = Path(components_path) / path if components_path else path
        logger.info("  component %s", shown)


def export_problems_csv(problems: Sequence[Problem], output: Path) -> Path:
    output = Path(output)
    output.parent.mkdir(parents=True, exist_ok=True)
    problems_to_frame(problems).to_csv(output, index=False)
    return output
