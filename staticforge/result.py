"""Failure tracking and the structured outcome of a generation run.

Every isolated failure (plugin load, lifecycle event, file, discovery) is recorded
here instead of only being logged, so callers can tell a clean run from one that
completed despite failures.

Key classes:
- Failure: one isolated failure.
- SkippedFile: a source file that was deliberately not rendered.
- GenerationResult: what ``Orchestrator.generate()`` returns.
- ErrorTracker: accumulates records during a run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import structlog

log = structlog.get_logger(__name__)

PLUGIN = "plugin"
EVENT = "event"
FILE = "file"
DISCOVERY = "discovery"
CORE = "core"

SUMMARY_FILE_LIMIT = 10


@dataclass(frozen=True)
class Failure:
    """An isolated failure.

    Attributes:
        kind: One of "plugin", "event", "file", "discovery", "core".
        subject: What failed (plugin directory, feature name, file path, ...).
        stage: Event or stage name where it failed.
        message: Error message.
        exception_type: Class name of the underlying exception.
    """

    kind: str
    subject: str
    stage: str
    message: str
    exception_type: str


@dataclass(frozen=True)
class SkippedFile:
    """A source file that was not rendered, with the reason."""

    path: Path
    reason: str


@dataclass
class GenerationResult:
    """Outcome of a generation run.

    ``bool(result)`` is ``success``: False only when the engine itself failed.
    Use ``clean`` to distinguish a fully clean run from one that completed with
    isolated failures.

    Attributes:
        success: False only when an exception escaped the orchestrator.
        files_processed: Files that went through the loop without failing.
        skipped: Files not rendered (conflicts, skip_file).
        failures: Every isolated failure recorded during the run.
        plugins: Names of the plugins loaded for the run.
    """

    success: bool
    files_processed: int = 0
    skipped: list[SkippedFile] = field(default_factory=list)
    failures: list[Failure] = field(default_factory=list)
    plugins: list[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.success

    @property
    def clean(self) -> bool:
        return self.success and not self.failures

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    def failures_of(self, kind: str) -> list[Failure]:
        return [f for f in self.failures if f.kind == kind]


class ErrorTracker:
    """Collects failures, skips and success counts for one run."""

    def __init__(self) -> None:
        self.failures: list[Failure] = []
        self.skipped: list[SkippedFile] = []
        self.files_processed = 0

    def reset(self) -> None:
        self.failures = []
        self.skipped = []
        self.files_processed = 0

    def _record(self, kind: str, subject: str, stage: str, error: BaseException) -> Failure:
        failure = Failure(
            kind=kind,
            subject=subject,
            stage=stage,
            message=str(error),
            exception_type=type(error).__name__,
        )
        self.failures.append(failure)
        return failure

    def record_plugin_error(self, plugin: str, error: BaseException) -> Failure:
        return self._record(PLUGIN, plugin, "load", error)

    def record_event_error(self, feature: str, event: str, error: BaseException) -> Failure:
        return self._record(EVENT, feature, event, error)

    def record_file_error(self, path: Path, stage: str, error: BaseException) -> Failure:
        return self._record(FILE, str(path), stage, error)

    def record_discovery_error(self, error: BaseException) -> Failure:
        return self._record(DISCOVERY, "discovery", "discovery", error)

    def record_core_error(self, component: str, error: BaseException) -> Failure:
        return self._record(CORE, component, "generation", error)

    def record_skip(self, path: Path, reason: str) -> None:
        self.skipped.append(SkippedFile(path=Path(path), reason=reason))

    def record_file_success(self) -> None:
        self.files_processed += 1

    @property
    def has_core_errors(self) -> bool:
        return any(f.kind == CORE for f in self.failures)

    def build_result(self, plugins: list[str] | None = None) -> GenerationResult:
        """Snapshot the tracker into a GenerationResult."""
        return GenerationResult(
            success=not self.has_core_errors,
            files_processed=self.files_processed,
            skipped=list(self.skipped),
            failures=list(self.failures),
            plugins=list(plugins or []),
        )

    def log_summary(self) -> None:
        """Log a one-line summary of the run."""
        if not self.failures:
            log.info(
                "Generation completed with no errors",
                files_processed=self.files_processed,
                files_skipped=len(self.skipped),
            )
            return

        counts: dict[str, int] = {}
        for failure in self.failures:
            counts[failure.kind] = counts.get(failure.kind, 0) + 1
        failed_files = [f.subject for f in self.failures if f.kind == FILE]
        summary = {
            "files_processed": self.files_processed,
            "files_skipped": len(self.skipped),
            "failure_counts": counts,
        }
        if failed_files:
            summary["failed_files"] = failed_files[:SUMMARY_FILE_LIMIT]
            if len(failed_files) > SUMMARY_FILE_LIMIT:
                summary["additional_failures"] = len(failed_files) - SUMMARY_FILE_LIMIT
        failed_features = sorted({f.subject for f in self.failures if f.kind == EVENT})
        if failed_features:
            summary["failed_features"] = failed_features

        if self.has_core_errors:
            log.critical("Generation completed with errors", **summary)
        else:
            log.warning("Generation completed with errors", **summary)
