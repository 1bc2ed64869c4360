"""The per-file render loop.

For each discovered file the loop reserves the file's output path, builds a fresh
RenderContext and threads it through PRE_RENDER, RENDER and POST_RENDER, then
writes the rendered content. A failure in any of these stages abandons that one
file; the loop always moves on to the next.

Key functions:
- compute_output_path: deterministic source path to output path mapping.

Key classes:
- RenderLoop: processes all discovered files with conflict detection.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from .context import DiscoveredFile, RenderContext
from .discovery import output_relative_path
from .errors import FeatureError, FileProcessingError
from .events import FILE_EVENTS, Event
from .result import ErrorTracker
from .utils import write_text_file

if TYPE_CHECKING:
    from .events import EventBus
    from .services import Services

log = structlog.get_logger(__name__)

VALIDATE_STAGE = "validate"
CONFLICT_STAGE = "conflict_check"
WRITE_STAGE = "write"


def compute_output_path(path: Path, source_dir: Path, output_dir: Path) -> Path:
    """Compute the output path for a source file.

    Strips the source directory and maps known source extensions to ``.html``.
    Files outside the source directory keep only their name.

    Args:
        path: Source file.
        source_dir: Root of the content tree.
        output_dir: Root of the generated site.

    Returns:
        Path of the artifact under ``output_dir``.
    """
    try:
        rel = Path(path).relative_to(source_dir)
    except ValueError:
        rel = Path(Path(path).name)
    return output_dir / output_relative_path(rel)


class RenderLoop:
    """Threads each discovered file through the per-file events.

    Attributes:
        bus: Event bus the per-file events are fired on.
        services: Services container (passed through to listeners by the bus).
        source_dir: Root of the content tree.
        output_dir: Root of the generated site.
        tracker: Collects skips, failures and success counts.
    """

    def __init__(
        self,
        bus: EventBus,
        services: Services,
        source_dir: Path,
        output_dir: Path,
        tracker: ErrorTracker | None = None,
    ):
        self.bus = bus
        self.services = services
        self.source_dir = source_dir
        self.output_dir = output_dir
        self.tracker = tracker or ErrorTracker()
        self._reserved: dict[Path, Path] = {}

    def compute_output_path(self, path: Path) -> Path:
        return compute_output_path(path, self.source_dir, self.output_dir)

    def process_all(self, files: Iterable[DiscoveredFile]) -> None:
        """Process every file in the order received. Never raises for file faults.

        Args:
            files: Discovered files, in discovery order.
        """
        files = list(files)
        self._reserved = {}
        if not files:
            log.info("No files to process")
            return

        log.info("Processing files", file_count=len(files))
        succeeded = 0
        failed = 0
        for discovered in files:
            try:
                if not isinstance(discovered, DiscoveredFile):
                    raise FileProcessingError(
                        f"expected DiscoveredFile, got {type(discovered).__name__}",
                        discovered if isinstance(discovered, (str, Path)) else repr(discovered),
                        VALIDATE_STAGE,
                    )
                if self._process_file(discovered):
                    self.tracker.record_file_success()
                    succeeded += 1
            except FileProcessingError as exc:
                failed += 1
                self.tracker.record_file_error(exc.file_path, exc.stage, exc)
                log.error(
                    "File processing error",
                    **exc.context(),
                    exc_info=exc.__cause__ or exc,
                )
        log.info(
            "File processing complete",
            total=len(files),
            success=succeeded,
            failed=failed,
            skipped=len(files) - succeeded - failed,
        )

    def _process_file(self, discovered: DiscoveredFile) -> bool:
        """Run the single-file algorithm.

        Returns:
            True if the file went through every stage, False if it was skipped.

        Raises:
            FileProcessingError: Any stage failed.
        """
        path = discovered.path
        log.debug("Processing file", file=str(path))
        try:
            expected = self.compute_output_path(path)
        except Exception as exc:
            raise FileProcessingError(str(exc), path, CONFLICT_STAGE) from exc

        claimant = self._reserved.get(expected)
        if claimant is not None and claimant != path:
            log.warning(
                "Output path conflict detected, skipping file to prevent overwrite",
                output=str(expected),
                claimed_by=str(claimant),
                skipped=str(path),
            )
            self.tracker.record_skip(path, f"output path {expected} already claimed by {claimant}")
            return False
        self._reserved[expected] = path

        context, skipped_at = self._run_stages(
            RenderContext.for_file(discovered), claim_output=True
        )
        if skipped_at is not None:
            log.info("Skipping file", file=str(path), stage=skipped_at)
            self.tracker.record_skip(path, f"skipped during {skipped_at}")
            return False
        return True

    def render(self, context: RenderContext, claim_output: bool = False) -> RenderContext:
        """Fire PRE_RENDER, RENDER and POST_RENDER for one context, then write it.

        Args:
            context: Fresh render context for the file.
            claim_output: Reserve the output path chosen during RENDER.

        Returns:
            The final context. As soon as a listener sets ``skip_file`` the
            context is returned: no further events fire and nothing is written.

        Raises:
            FileProcessingError: A stage failed; ``stage`` names which one.
        """
        context, _skipped_at = self._run_stages(context, claim_output)
        return context

    def _run_stages(
        self, context: RenderContext, claim_output: bool
    ) -> tuple[RenderContext, str | None]:
        """Run the per-file events and the write.

        Returns:
            The final context and the event during which the file was skipped,
            or None when it went through every stage.
        """
        stage = Event.PRE_RENDER
        try:
            for stage in FILE_EVENTS:
                context = self._fire(stage, context)
                if context.skip_file:
                    return context, stage
                if stage == Event.RENDER and claim_output:
                    self._claim_rendered_output(context)

            stage = WRITE_STAGE
            self._write_output(context)
        except FileProcessingError:
            raise
        except FeatureError as exc:
            raise FileProcessingError(
                f"{exc.feature}: {exc}", context.file_path, stage
            ) from exc
        except Exception as exc:
            raise FileProcessingError(str(exc), context.file_path, stage) from exc
        return context, None

    def _fire(self, event: str, context: RenderContext) -> RenderContext:
        result = self.bus.fire(event, context)
        if not isinstance(result, RenderContext):
            raise FileProcessingError(
                f"{event} listener returned {type(result).__name__}, expected RenderContext",
                context.file_path,
                event,
            )
        return result

    def _claim_rendered_output(self, context: RenderContext) -> None:
        """Reserve the output path a renderer chose, if it differs from the expected one."""
        if not context.output_path:
            return
        actual = Path(context.output_path)
        claimant = self._reserved.get(actual)
        if claimant is not None and claimant != context.file_path:
            raise FileProcessingError(
                f"Output path conflict for {actual}: already claimed by {claimant}",
                context.file_path,
                Event.RENDER,
            )
        self._reserved[actual] = context.file_path

    def _write_output(self, context: RenderContext) -> None:
        if context.rendered_content is None or not context.output_path:
            return
        written = write_text_file(Path(context.output_path), context.rendered_content)
        log.debug("Wrote output file", output=str(context.output_path), size=written)
