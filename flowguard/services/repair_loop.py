"""
Repair Loop

Bounded validate ⇄ repair state machine:

    validating ──valid──────────────────────────► done(success)
        │ invalid, iterations < cap
        ▼
    repairing ──≥1 fix applied──► validating (iteration + 1)
        │ nothing applicable / cap reached
        ▼
    done(failure)  best-effort graph + changelog + residual diagnostics

At most ``cap + 1`` validation passes run for any input.
"""

import logging
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field

from flowguard.config import RepairSettings
from flowguard.schemas.process_graph import ProcessGraph
from flowguard.schemas.violations import Violation, ValidationReport
from flowguard.services.graph_validator import GraphValidator
from flowguard.services.graph_repair import GraphRepair

logger = logging.getLogger(__name__)


class RepairOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class RepairRunResult(BaseModel):
    outcome: RepairOutcome
    graph: ProcessGraph
    changelog: List[str] = Field(default_factory=list)
    residual_errors: List[Violation] = Field(default_factory=list)
    residual_warnings: List[Violation] = Field(default_factory=list)
    iterations: int = 0
    validation_passes: int = 0


class RepairLoop:
    """
    Coordinates GraphValidator and GraphRepair on a private working copy.
    The caller's graph is never mutated and the loop never raises.
    """

    def __init__(
        self,
        validator: Optional[GraphValidator] = None,
        repairer: Optional[GraphRepair] = None,
        settings: Optional[RepairSettings] = None,
    ):
        self.settings = settings or RepairSettings()
        self.validator = validator or GraphValidator(self.settings)
        self.repairer = repairer or GraphRepair(settings=self.settings)

    def run(self, graph: ProcessGraph, max_iterations: Optional[int] = None) -> RepairRunResult:
        cap = self.settings.max_repair_iterations if max_iterations is None else max(0, max_iterations)
        working = graph.model_copy(deep=True)
        changelog: List[str] = []
        iterations = 0

        report = self.validator.validate(working)
        passes = 1

        while not report.valid:
            if iterations >= cap:
                logger.warning(f"⚠️ Could not fully repair graph after {cap} iteration(s)")
                break

            logger.info(f"🔧 Auto-repairing {len(report.errors)} error(s) (iteration {iterations + 1}/{cap})")
            repaired, notes = self._repair_pass(working, report)
            if not notes:
                logger.warning("⚠️ Unable to automatically fix remaining errors")
                break

            working = repaired
            changelog.extend(notes)
            iterations += 1

            report = self.validator.validate(working)
            passes += 1

        return self._finish(working, report, changelog, iterations, passes)

    def _repair_pass(self, working: ProcessGraph, report: ValidationReport) -> Tuple[ProcessGraph, List[str]]:
        """One pass over the current errors; returns the repaired graph and the notes of applied fixes."""
        notes: List[str] = []
        for violation in report.errors:
            result = self.repairer.repair(working, violation)
            if result.applied:
                working = result.graph
                notes.append(result.note)
                logger.info(f"   ✓ {result.note}")
        return working, notes

    def _finish(
        self,
        graph: ProcessGraph,
        report: ValidationReport,
        changelog: List[str],
        iterations: int,
        passes: int,
    ) -> RepairRunResult:
        if report.valid:
            if changelog:
                logger.info(f"✅ Graph validation passed after {iterations} iteration(s) with {len(changelog)} auto-fix(es)")
            else:
                logger.info("✅ Graph validation passed")
            outcome = RepairOutcome.SUCCESS
        else:
            for violation in report.errors:
                logger.warning(f"  - ERROR: {violation.message}")
            outcome = RepairOutcome.FAILURE

        for violation in report.warnings:
            logger.debug(f"  - WARNING: {violation.message}")

        return RepairRunResult(
            outcome=outcome,
            graph=graph,
            changelog=changelog,
            residual_errors=report.errors,
            residual_warnings=report.warnings,
            iterations=iterations,
            validation_passes=passes,
        )
