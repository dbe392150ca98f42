"""Check orchestrator: load settings, model and rules, evaluate, return the report."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import yaml

from archrules.engine.evaluator import run_rules
from archrules.engine.rule_loader import load_rules
from archrules.errors import CheckError
from archrules.model.loader import load_codebase
from archrules.settings import CONFIG_DIR, load_settings

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from archrules.engine.evaluator import CancelToken
    from archrules.engine.report import Report
    from archrules.engine.rules import Rule
    from archrules.model.codebase import Codebase
    from archrules.settings import EngineSettings

logger = logging.getLogger(__name__)

RULES_FILE = "rules.yml"
MODEL_FILES: tuple[str, ...] = ("model.yml", "model.yaml", "model.json")

# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CheckResult:
    """Result of a check run."""

    report: Report
    rules: tuple[Rule, ...]
    codebase: Codebase
    settings: EngineSettings

    @property
    def exit_code(self) -> int:
        return self.report.exit_code


# ---------------------------------------------------------------------------
# Path resolution
# ---------------------------------------------------------------------------


def default_rules_path(project_root: Path) -> Path:
    return project_root / CONFIG_DIR / RULES_FILE


def default_model_path(project_root: Path) -> Path:
    """Return the first existing model snapshot, or the YAML default."""
    base = project_root / CONFIG_DIR
    for name in MODEL_FILES:
        candidate = base / name
        if candidate.is_file():
            return candidate
    return base / MODEL_FILES[0]


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def load_project_rules(
    project_root: Path,
    *,
    rules_path: Path | None = None,
    settings: EngineSettings | None = None,
) -> list[Rule]:
    """Load the project's rules, wrapping any configuration error in CheckError."""
    if settings is None:
        settings = load_settings(project_root)
    if rules_path is None:
        rules_path = default_rules_path(project_root)
    if not rules_path.is_file():
        msg = f"Rules file not found: {rules_path}"
        raise CheckError(msg)
    try:
        return load_rules(rules_path, settings)
    except (ValueError, OSError) as exc:
        msg = f"Invalid rules configuration: {exc}"
        raise CheckError(msg) from exc


def _load_model(model_path: Path) -> Codebase:
    if not model_path.is_file():
        msg = f"Model snapshot not found: {model_path}"
        raise CheckError(msg)
    try:
        return load_codebase(model_path)
    except (ValueError, OSError, yaml.YAMLError) as exc:
        msg = f"Invalid model snapshot {model_path}: {exc}"
        raise CheckError(msg) from exc


def _select_rules(rules: list[Rule], rule_names: Sequence[str] | None) -> list[Rule]:
    if not rule_names:
        return rules
    known = {r.name for r in rules}
    unknown = [n for n in rule_names if n not in known]
    if unknown:
        msg = f"Unknown rule(s): {', '.join(unknown)}"
        raise CheckError(msg)
    wanted = set(rule_names)
    return [r for r in rules if r.name in wanted]


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def check(
    project_root: Path,
    *,
    rules_path: Path | None = None,
    model_path: Path | None = None,
    rule_names: Sequence[str] | None = None,
    max_workers: int | None = None,
    cancel: CancelToken | None = None,
) -> CheckResult:
    """Run the check process: load settings, rules and model, then evaluate.

    Parameters
    ----------
    project_root:
        Root of the project (where ``.archrules/`` lives).
    rules_path:
        Optional explicit path to ``rules.yml``.  Defaults to
        ``<project_root>/.archrules/rules.yml``.
    model_path:
        Optional explicit path to the model snapshot.  Defaults to the first
        of ``model.yml``, ``model.yaml``, ``model.json`` under ``.archrules/``.
    rule_names:
        When given, only these rules are evaluated, in registration order.
    max_workers:
        Overrides ``engine.max_workers`` from ``config.yml``.

    Raises
    ------
    CheckError
        When the rules or the model cannot be loaded.
    """
    settings = load_settings(project_root)
    rules = _select_rules(
        load_project_rules(project_root, rules_path=rules_path, settings=settings),
        rule_names,
    )
    codebase = _load_model(model_path or default_model_path(project_root))

    workers = max_workers if max_workers is not None else settings.max_workers
    if workers < 1:
        msg = f"--workers must be at least 1, got {workers}"
        raise CheckError(msg)

    logger.info("Checking %d rule(s) against %d unit(s)", len(rules), len(codebase))
    report = run_rules(codebase, rules, max_workers=workers, cancel=cancel)
    return CheckResult(
        report=report, rules=tuple(rules), codebase=codebase, settings=settings
    )
