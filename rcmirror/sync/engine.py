"""Core mirror engine: list, dedupe, hash, compare, copy, record."""

import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Callable, Optional

from rich.progress import Progress, SpinnerColumn, TextColumn

from ..config import MirrorSettings, RunOptions
from ..exceptions import (
    MirrorDestinationError,
    MirrorStructuralError,
    MirrorToolError,
)
from ..log import EventId, event
from ..models import (
    ComparisonResult,
    DuplicateSummary,
    HashRecord,
    RunResult,
    TransferOutcome,
)
from ..output import OutputFormatter
from ..parser import (
    detect_duplicate_hashes,
    parse_duplicate_summary,
    parse_hash_listing,
    parse_listing,
)
from ..stream_client import StreamClientController
from ..supervisor import RunContext
from ..utils import format_size, max_age_days
from .comparator import ReconciliationEngine
from .operations import RcloneOperations
from .planner import ProgressFn, TransferPlanner
from .scanner import LocalHashScanner
from .scope import ScopeFilterBuilder
from .state import RunStateManager

logger = logging.getLogger(__name__)


@dataclass
class MirrorReport:
    """Everything a mirror run found and did."""

    simulated: bool
    scope: Optional[str] = None
    listed_files: Optional[int] = None
    hash_records: int = 0
    invalid_lines: int = 0
    duplicates: Optional[DuplicateSummary] = None
    duplicate_hashes: set[str] = field(default_factory=set)
    comparison: Optional[ComparisonResult] = None
    transfer: Optional[TransferOutcome] = None
    failed_operations: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    complete: bool = True
    state_saved: bool = False

    def warn(self, message: str, event_id: EventId = EventId.GENERAL) -> None:
        """Record a data-quality warning; the run continues but is incomplete."""
        logger.warning(message, extra=event(event_id))
        self.warnings.append(message)
        self.complete = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "simulated": self.simulated,
            "scope": self.scope,
            "listed_files": self.listed_files,
            "hash_records": self.hash_records,
            "invalid_lines": self.invalid_lines,
            "duplicate_hashes": sorted(self.duplicate_hashes),
            "failed_operations": self.failed_operations,
            "warnings": self.warnings,
            "complete": self.complete,
            "state_saved": self.state_saved,
        }
        if self.duplicates is not None:
            data["duplicates"] = dataclasses.asdict(self.duplicates)
        if self.comparison is not None:
            data["matched"] = self.comparison.matched
            data["missing_locally"] = sorted(
                r.path for r in self.comparison.missing_locally
            )
        if self.transfer is not None:
            data["transfer"] = {
                "attempted": self.transfer.attempted,
                "succeeded": self.transfer.succeeded,
                "failed_paths": self.transfer.failed_paths,
                "elapsed_seconds": round(self.transfer.elapsed_seconds, 3),
                "throughput": round(self.transfer.throughput, 3),
            }
        return data


class MirrorEngine:
    """Mirrors a cloud remote into a local directory via rclone."""

    def __init__(
        self,
        settings: MirrorSettings,
        output: Optional[OutputFormatter] = None,
        context: Optional[RunContext] = None,
        state: Optional[RunStateManager] = None,
        scanner: Optional[LocalHashScanner] = None,
        stream_client: Optional[StreamClientController] = None,
        operations_factory: Optional[Callable[..., RcloneOperations]] = None,
        today: Callable[[], date] = date.today,
    ):
        """Initialize mirror engine.

        Args:
            settings: Mirror settings
            output: Output formatter for displaying progress/status
            context: Run context; ``context.cancel()`` aborts the active tool
            state: Run state manager (built from settings if omitted)
            scanner: Local hash source
            stream_client: File-stream client controller
            operations_factory: Builds RcloneOperations (replaced in tests)
            today: Returns the current date
        """
        self.settings = settings
        self.output = output or OutputFormatter()
        self.context = context or RunContext()
        self.state = state or RunStateManager(
            settings.last_run_file, settings.local_hash_file
        )
        self.scanner = scanner or LocalHashScanner()
        self.stream_client = stream_client or StreamClientController(
            stop_command=settings.stream_client_stop_command,
            start_command=settings.stream_client_start_command,
        )
        self.operations_factory = operations_factory or RcloneOperations
        self.comparator = ReconciliationEngine()
        self._today = today
        self._live_display = False

    def run(
        self,
        options: RunOptions,
        progress_callback: Optional[ProgressFn] = None,
    ) -> MirrorReport:
        """Run one mirror pass.

        Args:
            options: Per-run flags
            progress_callback: Optional per-file transfer progress hook

        Returns:
            MirrorReport

        Raises:
            MirrorStructuralError: If a structural check fails (nothing is
                copied and no state is written)
            MirrorToolError: If a tool invocation fails and fail_fast is set
        """
        settings = self.settings
        if options.remote:
            remote = options.remote
            if not remote.endswith(":"):
                remote = f"{remote}:"
            settings = dataclasses.replace(settings, remote=remote)

        report = MirrorReport(simulated=options.simulate, scope=options.scope)
        logger.info(
            f"Mirror run started: {settings.remote_base} -> {settings.local_root} "
            f"({'simulated' if options.simulate else 'live'})",
            extra=event(EventId.RUN_START),
        )
        if not self.output.quiet:
            self.output.info(
                f"Mirroring: {settings.remote_base} -> {settings.local_root}"
            )
            if options.simulate:
                self.output.info("Simulation: No changes will be made")
            self.output.print("")

        try:
            self._check_structure(settings, options)
            filter_file, subtree = self._resolve_filter(settings, options)

            last_run = self.state.load_last_run()
            max_age = None
            if not options.ignore_max_age and last_run is not None:
                if last_run.complete:
                    max_age = max_age_days(last_run.run_date, self._today())
                    logger.info(
                        f"Limiting scan to files modified in the last {max_age}d"
                    )
                else:
                    # Files that failed last time may be older than that run
                    logger.info(
                        f"Previous run on {last_run.run_date.isoformat()} was "
                        "incomplete; scanning without a max-age limit"
                    )

            operations = self.operations_factory(
                settings,
                context=self.context,
                filter_file=filter_file,
                max_age_days=max_age,
            )
            self.context.reset()
            self._live_display = progress_callback is not None
            with self.stream_client.paused(skip=options.skip_process_control):
                self._run_pipeline(
                    settings, options, operations, subtree, report, progress_callback
                )
        except MirrorStructuralError as e:
            logger.error(f"Run aborted: {e}", extra=event(EventId.RUN_ABORTED))
            raise

        logger.info(
            f"Mirror run finished ({'complete' if report.complete else 'incomplete'})",
            extra=event(
                EventId.RUN_COMPLETE if report.complete else EventId.RUN_INCOMPLETE
            ),
        )
        if not self.output.quiet:
            self._display_summary(report)
        return report

    def _check_structure(self, settings: MirrorSettings, options: RunOptions) -> None:
        self.state.require_hash_source()
        if not options.simulate and not settings.local_root.is_dir():
            raise MirrorDestinationError(
                f"Local destination does not exist: {settings.local_root}"
            )

    def _resolve_filter(
        self, settings: MirrorSettings, options: RunOptions
    ) -> tuple[Optional[Path], Optional[str]]:
        """Pick the filter file for this run.

        Returns:
            Tuple of (filter file or None, scoped subtree or None)
        """
        if options.scope:
            scope_filter = ScopeFilterBuilder(settings.remote_base).build(options.scope)
            if scope_filter is not None:
                path = scope_filter.write(settings.filter_dir)
                logger.info(f"Scoped run: {scope_filter.subtree} (filter {path})")
                return path, scope_filter.subtree
        return settings.filter_file, None

    def _run_pipeline(
        self,
        settings: MirrorSettings,
        options: RunOptions,
        operations: RcloneOperations,
        subtree: Optional[str],
        report: MirrorReport,
        progress_callback: Optional[ProgressFn],
    ) -> None:
        # Step 1: List remote
        with self._spinner("Listing remote files...") as update:
            result = operations.list_remote()
            if self._check_result("list", result, options, report):
                report.listed_files = len(parse_listing(result.stdout_lines))
                update(f"Found {report.listed_files} remote file(s)")

        # Step 2: Deduplicate remote
        if options.skip_dedupe:
            logger.info("Skipping deduplication")
        else:
            with self._spinner("Deduplicating remote...") as update:
                result = operations.dedupe(simulate=options.simulate)
                if self._check_result("dedupe", result, options, report):
                    report.duplicates = parse_duplicate_summary(
                        result.log_lines, simulated=options.simulate
                    )
                    update(f"{report.duplicates.duplicate_files} duplicate(s)")

        # Step 3: Hash remote
        with self._spinner("Hashing remote files...") as update:
            result = operations.hash_remote()
            hashed = self._check_result("hash", result, options, report)
            if hashed:
                update(f"Hashed {len(result.stdout_lines)} remote file(s)")
        if not hashed:
            report.complete = False
            logger.error("No remote hashes; skipping reconciliation and transfer")
            return

        inventory, invalid = parse_hash_listing(result.stdout_lines)
        report.hash_records = len(result.stdout_lines) - len(invalid)
        report.invalid_lines = len(invalid)
        if invalid:
            # Already logged by parse_hash_listing
            report.warnings.append(f"{len(invalid)} hash line(s) could not be parsed")
            report.complete = False
        if (
            report.listed_files is not None
            and report.listed_files != report.hash_records
        ):
            report.warn(
                f"Listed {report.listed_files} file(s) "
                f"but got {report.hash_records} hash(es)",
                EventId.RECONCILE_MISMATCH,
            )

        # Duplicates must be found before the records collapse into an inventory
        report.duplicate_hashes = detect_duplicate_hashes(result.stdout_lines)
        self.comparator.enforce_duplicate_policy(
            report.duplicate_hashes,
            dedupe_skipped=options.skip_dedupe or options.simulate,
        )

        # Step 4: Compare with local inventory
        local_hashes = self.state.load_local_hashes()
        comparison = self.comparator.compare(
            inventory, local_hashes, report.duplicate_hashes
        )
        report.comparison = comparison
        self._display_plan(comparison, options.simulate)

        # Step 5: Copy missing files
        planner = TransferPlanner(
            include_file=settings.include_file,
            simulate=options.simulate,
            max_retries_per_file=settings.copy_retries,
            fail_fast=options.fail_fast,
            retry_delay=settings.retry_delay,
            progress_callback=progress_callback,
        )

        def copy_fn(record: HashRecord) -> bool:
            return operations.copy_file(record, settings.local_root).succeeded

        report.transfer = planner.execute(comparison.missing_locally, copy_fn)
        for path in report.transfer.failed_paths:
            report.warn(f"Not copied: {path}", EventId.TRANSFER_FAILED)

        if options.simulate:
            return

        # Step 6: Rehash local files, verify, and record state
        scan_root = settings.local_root / subtree if subtree else settings.local_root
        with self._spinner("Hashing local files...") as update:
            if scan_root.is_dir():
                local_records = list(
                    self.scanner.iter_hashes(scan_root, base_path=settings.local_root)
                )
            else:
                local_records = []
            update(f"Hashed {len(local_records)} local file(s)")
        self.state.append_local_hashes(local_records)

        present = {r.hash for r in local_records} | local_hashes
        failed = set(report.transfer.failed_paths)
        unverified = sorted(
            r.path
            for r in comparison.missing_locally
            if r.hash not in present and r.path not in failed
        )
        if unverified:
            report.warn(
                f"{len(unverified)} copied file(s) not found locally after "
                f"transfer: {', '.join(unverified[:5])}",
                EventId.VERIFY_MISMATCH,
            )

        self.state.save_last_run(self._today(), complete=report.complete)
        report.state_saved = True

    def _check_result(
        self,
        operation: str,
        result: RunResult,
        options: RunOptions,
        report: MirrorReport,
    ) -> bool:
        """Record a failed tool invocation.

        Returns:
            True if the invocation succeeded

        Raises:
            MirrorToolError: If it failed and fail_fast is set
        """
        if result.succeeded:
            return True
        message = (
            f"rclone {operation} failed after {result.attempts} attempt(s): "
            f"{result.status.value} (exit code {result.exit_code})"
        )
        logger.error(message)
        report.failed_operations.append(operation)
        report.complete = False
        if options.fail_fast:
            raise MirrorToolError(message, result=result)
        if not self.output.quiet:
            self.output.error(message)
        return False

    def _spinner(self, description: str):
        # rich allows one live display per console; the transfer display wins
        return _Spinner(description, disable=self.output.quiet or self._live_display)

    def _display_plan(self, comparison: ComparisonResult, simulate: bool) -> None:
        if self.output.quiet:
            return
        self.output.info("Mirror plan:")
        self.output.info(f"  = Present locally: {comparison.matched} file(s)")
        self.output.info(f"  ↓ Copy: {len(comparison.missing_locally)} file(s)")
        if comparison.duplicate_hashes:
            self.output.warning(
                f"  ⚠ Duplicate hashes: {len(comparison.duplicate_hashes)}"
            )
        self.output.print("")

    def _display_summary(self, report: MirrorReport) -> None:
        self.output.print("")
        if report.simulated:
            self.output.success("Simulation complete!")
        elif report.complete:
            self.output.success("Mirror complete!")
        else:
            self.output.warning("Mirror finished with warnings (incomplete)")

        rows: list[tuple[str, Any]] = []
        if report.listed_files is not None:
            rows.append(("Remote files", report.listed_files))
        if report.duplicates is not None:
            rows.append(("Duplicates removed", report.duplicates.duplicate_files))
            if report.duplicates.bytes_computable:
                rows.append(("Space saved", format_size(report.duplicates.bytes_saved)))
            elif report.duplicates.note:
                rows.append(("Space saved", report.duplicates.note))
        if report.comparison is not None:
            rows.append(("Already present", report.comparison.matched))
        if report.transfer is not None:
            label = "Would copy" if report.simulated else "Copied"
            rows.append((label, f"{report.transfer.succeeded}/{report.transfer.attempted}"))
            if report.transfer.failed_paths:
                rows.append(("Failed", len(report.transfer.failed_paths)))
            rows.append(("Throughput", f"{report.transfer.throughput:.2f} files/s"))
        if report.failed_operations:
            rows.append(("Failed operations", ", ".join(report.failed_operations)))
        if rows:
            self.output.print_summary("Mirror summary", rows)


class _Spinner:
    """Transient spinner for one scan phase."""

    def __init__(self, description: str, disable: bool = False):
        self.description = description
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
            disable=disable,
        )
        self._task = None

    def __enter__(self) -> Callable[[str], None]:
        self._progress.__enter__()
        self._task = self._progress.add_task(self.description, total=None)
        return self._update

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self._progress.__exit__(exc_type, exc_val, exc_tb)

    def _update(self, description: str) -> None:
        if self._task is not None:
            self._progress.update(self._task, description=description)
