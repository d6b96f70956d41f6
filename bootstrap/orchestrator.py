"""
Orchestrator for the modular bootstrap.

``BootstrapOrchestrator`` resolves the module order, runs each module through
validate/execute/verify while recording its status, and on failure rolls
back the modules of the current run from the run's backup set. It also
implements the dry run, ``--rollback`` and ``--list-modules``.
"""

import logging
import subprocess
from typing import Any, Dict, List, Optional, Tuple, Type

from bootstrap.backup_set import BackupSet
from bootstrap.base_module import BaseModule
from bootstrap.context import PromptFunc, RunContext
from bootstrap.registry import (
    ModuleDescriptor,
    ModuleRegistry,
    find_module,
    resolve_order,
)
from bootstrap.run_state import ModuleStatus, RunState
from common.atomic_utils import cleanup_temp_files
from common.errors import (
    BackupError,
    BootstrapError,
    ExecutionError,
    ResolverError,
    RollbackError,
    ValidationError,
    VerificationError,
)
from setup.config_models import BootstrapSettings

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_RESOLVER_ERROR = 2
EXIT_INTERRUPTED = 130


class Plan:
    """The modules a run will go through, in order, and those left out."""

    def __init__(self, modules: List[ModuleDescriptor], skipped: List[str]):
        self.modules = modules
        self.skipped = skipped

    @property
    def module_ids(self) -> List[str]:
        return [d.module_id for d in self.modules]


class RunReport:
    """Outcome of one orchestrator call."""

    def __init__(self):
        self.planned: List[str] = []
        self.succeeded: List[str] = []
        self.resumed: List[str] = []
        self.skipped: List[str] = []
        self.failed: Optional[str] = None
        self.error: Optional[BootstrapError] = None
        self.rolled_back: List[str] = []
        self.rollback_errors: List[RollbackError] = []
        self.validation: Dict[str, Optional[str]] = {}
        self.interrupted = False
        self.exit_code = EXIT_SUCCESS

    @property
    def ok(self) -> bool:
        return self.exit_code == EXIT_SUCCESS


ModulePair = Tuple[ModuleDescriptor, BaseModule]


class BootstrapOrchestrator:
    """
    Runs bootstrap modules in dependency order.

    Only resolver errors decide whether anything runs at all; errors raised
    by a module are caught per module and turned into a failure of the run.
    """

    def __init__(
        self,
        settings: BootstrapSettings,
        logger: Optional[logging.Logger] = None,
        descriptors: Optional[Dict[str, ModuleDescriptor]] = None,
        run_state: Optional[RunState] = None,
        prompt: Optional[PromptFunc] = None,
    ):
        """
        Args:
            settings: The bootstrap settings.
            logger: Optional logger instance.
            descriptors: Modules to work with. Defaults to the scripts in
                ``settings.modules_dir`` when set, else the built-in modules.
            run_state: State store. Defaults to ``settings.state_file``;
                never written during a dry run.
            prompt: Replacement for ``input`` used for questions.
        """
        self.settings = settings
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self.symbols = settings.symbols
        self._descriptors = descriptors
        self.run_state = run_state or RunState.load(
            settings.state_file, persist=not settings.dry_run, logger=self.logger
        )
        self.prompt = prompt

    @property
    def descriptors(self) -> Dict[str, ModuleDescriptor]:
        if self._descriptors is None:
            if self.settings.modules_dir:
                self._descriptors = ModuleRegistry.discover_scripts(
                    self.settings.modules_dir, self.logger
                )
            else:
                self._descriptors = ModuleRegistry.builtin_descriptors(self.logger)
        return self._descriptors

    def _new_context(self) -> RunContext:
        return RunContext(
            self.settings, self.run_state, prompt=self.prompt, logger=self.logger
        )

    def _instantiate(self, descriptor: ModuleDescriptor, context: RunContext) -> BaseModule:
        return descriptor.create(
            self.settings,
            context,
            logging.getLogger(f"machine_rites.{descriptor.module_id}"),
        )

    # --- planning ---------------------------------------------------------

    def plan(self, selected: Optional[List[str]] = None) -> Plan:
        """
        Work out which modules run, in which order.

        Args:
            selected: Module IDs or names given on the command line. All
                modules when empty.

        Raises:
            ResolverError: The graph is invalid, a module is unknown, or a
                planned module depends on a module that is neither planned
                nor recorded as succeeded by an earlier run.
        """
        ordered = resolve_order(self.descriptors)
        by_id = {d.module_id: d for d in ordered}

        if selected:
            wanted = {find_module(by_id, token).module_id for token in selected}
        else:
            wanted = set(by_id)

        skipped = set()
        for token in self.settings.skip_modules:
            try:
                skipped.add(find_module(by_id, token).module_id)
            except ResolverError:
                self.logger.warning(f"Ignoring skip request for unknown module '{token}'")

        modules = [d for d in ordered if d.module_id in wanted and d.module_id not in skipped]
        planned_ids = {d.module_id for d in modules}
        for descriptor in modules:
            for dependency in descriptor.dependencies:
                if dependency in planned_ids:
                    continue
                if self.run_state.succeeded(dependency):
                    self.logger.debug(
                        f"{descriptor.module_id}: dependency {dependency} satisfied by an earlier run"
                    )
                    continue
                reason = "skipped" if dependency in skipped else "not selected"
                raise ResolverError(
                    f"Module '{descriptor.module_id}' depends on '{dependency}', which is "
                    f"{reason} and has not succeeded in an earlier run",
                    module_id=descriptor.module_id,
                )
        return Plan(modules, sorted(skipped & wanted))

    # --- running ----------------------------------------------------------

    def run(self, selected: Optional[List[str]] = None) -> RunReport:
        """Run the planned modules; a dry run when ``settings.dry_run`` is set."""
        if self.settings.dry_run:
            return self.dry_run(selected)

        report = RunReport()
        try:
            plan = self.plan(selected)
        except ResolverError as e:
            self.logger.error(f"{self.symbols['error']} {e.diagnosis()}")
            report.error = e
            report.exit_code = EXIT_RESOLVER_ERROR
            return report

        report.planned = plan.module_ids
        report.skipped = plan.skipped
        for module_id in plan.skipped:
            self.logger.info(f"{self.symbols['info']} Skipping {module_id} (requested)")
        if not plan.modules:
            self.logger.info(f"{self.symbols['info']} No modules to run.")
            return report

        resumed = self.run_state.begin_run(plan.module_ids, fresh=self.settings.fresh)
        context = self._new_context()
        if resumed and self.run_state.backup_dir is not None:
            try:
                context.backup_set = BackupSet.open(self.run_state.backup_dir, self.logger)
            except BackupError as e:
                self.logger.warning(f"Cannot reopen the run's backup set: {e}")

        self.logger.info(
            f"{self.symbols['rocket']} Running modules: {', '.join(plan.module_ids)}"
        )
        completed: List[ModulePair] = []
        for index, descriptor in enumerate(plan.modules, start=1):
            module_id = descriptor.module_id
            if resumed and self.run_state.succeeded(module_id):
                self.logger.info(
                    f"{self.symbols['info']} [{index}/{len(plan.modules)}] {module_id} already succeeded, skipping"
                )
                report.resumed.append(module_id)
                continue

            self.logger.info(
                f"{self.symbols['step']} [{index}/{len(plan.modules)}] {module_id}: {descriptor.description}"
            )
            module = self._instantiate(descriptor, context)
            try:
                self._run_module(descriptor, module, context)
            except ValidationError as e:
                report.failed = module_id
                report.error = e
                self._handle_failure(e, None, completed, context, report)
                return report
            except (ExecutionError, VerificationError) as e:
                # A module that never got to run has nothing of its own to undo.
                started = self.run_state.status(module_id) == ModuleStatus.RUNNING
                self.run_state.mark(module_id, ModuleStatus.FAILED, str(e))
                report.failed = module_id
                report.error = e
                failed = (descriptor, module) if started else None
                self._handle_failure(e, failed, completed, context, report)
                return report
            except KeyboardInterrupt:
                self.run_state.mark(module_id, ModuleStatus.FAILED, "interrupted")
                report.failed = module_id
                report.interrupted = True
                report.exit_code = EXIT_INTERRUPTED
                self.logger.error(
                    f"{self.symbols['error']} [{module_id}] interrupted; state saved. "
                    "Re-run to resume or use --rollback to undo."
                )
                self._cleanup_after_interrupt()
                return report

            completed.append((descriptor, module))
            report.succeeded.append(module_id)
            self.logger.info(f"{self.symbols['success']} {module_id} completed")

        self.run_state.complete()
        if context.backup_set is not None:
            BackupSet.prune(
                self.settings.backup_root, self.settings.backup_retention, self.logger
            )
        self.logger.info(f"{self.symbols['sparkles']} Bootstrap completed successfully.")
        return report

    def _run_module(
        self, descriptor: ModuleDescriptor, module: BaseModule, context: RunContext
    ) -> None:
        module_id = descriptor.module_id
        unmet = [dep for dep in descriptor.dependencies if not self.run_state.succeeded(dep)]
        if unmet:
            raise ValidationError(
                f"dependencies not satisfied: {', '.join(unmet)}", module_id=module_id
            )

        self._invoke(module.validate, ValidationError, module_id, "validation failed")

        if descriptor.rollback:
            self._invoke(
                lambda: context.ensure_backup_set() is not None,
                ExecutionError,
                module_id,
                "backup set creation failed",
            )
        self.run_state.mark(module_id, ModuleStatus.RUNNING)
        self._invoke(module.execute, ExecutionError, module_id, "execution failed")
        self._invoke(module.verify, VerificationError, module_id, "verification failed")
        self.run_state.mark(module_id, ModuleStatus.SUCCEEDED)

    @staticmethod
    def _invoke(
        method,
        error_class: Type[BootstrapError],
        module_id: str,
        failure_message: str,
    ) -> None:
        """
        Call a lifecycle method and raise ``error_class`` unless it returned
        True. Errors of the right class pass through with the module ID
        filled in; anything else is wrapped.
        """
        try:
            ok = method()
        except error_class as e:
            if e.module_id is None:
                e.module_id = module_id
            raise
        except BootstrapError as e:
            raise error_class(
                str(e),
                module_id=module_id,
                returncode=e.returncode,
                original_error=e,
            ) from e
        except subprocess.CalledProcessError as e:
            command = e.cmd if isinstance(e.cmd, str) else subprocess.list2cmdline(e.cmd)
            raise error_class(
                f"{failure_message}: `{command}` failed",
                module_id=module_id,
                returncode=e.returncode,
                original_error=e,
            ) from e
        except Exception as e:
            raise error_class(
                f"{failure_message}: {e}", module_id=module_id, original_error=e
            ) from e
        if not ok:
            raise error_class(failure_message, module_id=module_id)

    def _handle_failure(
        self,
        error: BootstrapError,
        failed: Optional[ModulePair],
        completed: List[ModulePair],
        context: RunContext,
        report: RunReport,
    ) -> None:
        report.exit_code = EXIT_FAILURE
        self.logger.error(f"{self.symbols['error']} {error.diagnosis()}")

        to_roll_back = ([failed] if failed else []) + list(reversed(completed))
        policy = self.settings.effective_rollback_on_failure()
        if to_roll_back and policy is None:
            policy = context.confirm(
                "Roll back the modules completed in this run?", default=False
            )

        if to_roll_back and policy:
            self.logger.info(f"{self.symbols['warning']} Rolling back this run...")
            self._roll_back(to_roll_back, report)
            return

        hint = "Fix the problem and re-run to resume, or run with --rollback to undo."
        if context.backup_set is not None:
            hint += f" Backup: {context.backup_set.path}"
        self.logger.info(f"{self.symbols['info']} {hint}")

    def _roll_back(self, pairs: List[ModulePair], report: RunReport) -> None:
        """Roll ``pairs`` back in the given order. Failures are warnings only."""
        for descriptor, module in pairs:
            module_id = descriptor.module_id
            if not descriptor.rollback:
                self.logger.info(f"{self.symbols['info']} {module_id} has nothing to roll back")
                continue
            try:
                self._invoke(module.rollback, RollbackError, module_id, "rollback failed")
            except RollbackError as e:
                self.logger.warning(f"{self.symbols['warning']} {e.diagnosis()}")
                report.rollback_errors.append(e)
                continue
            self.run_state.mark(module_id, ModuleStatus.ROLLED_BACK)
            report.rolled_back.append(module_id)
            self.logger.info(f"{self.symbols['success']} Rolled back {module_id}")

    def _cleanup_after_interrupt(self) -> None:
        for directory in (
            self.settings.home,
            self.settings.xdg_config_home,
            self.settings.home / ".bashrc.d",
        ):
            cleanup_temp_files(directory, max_age_seconds=0, current_logger=self.logger)

    # --- other entry points -----------------------------------------------

    def dry_run(self, selected: Optional[List[str]] = None) -> RunReport:
        """
        Resolve and validate only. Prints the plan; writes nothing.
        """
        report = RunReport()
        try:
            plan = self.plan(selected)
        except ResolverError as e:
            self.logger.error(f"{self.symbols['error']} {e.diagnosis()}")
            report.error = e
            report.exit_code = EXIT_RESOLVER_ERROR
            return report

        report.planned = plan.module_ids
        report.skipped = plan.skipped
        context = self._new_context()
        self.logger.info(f"{self.symbols['info']} Dry run: {len(plan.modules)} module(s) planned")
        for index, descriptor in enumerate(plan.modules, start=1):
            module = self._instantiate(descriptor, context)
            try:
                self._invoke(module.validate, ValidationError, descriptor.module_id, "validation failed")
            except ValidationError as e:
                report.validation[descriptor.module_id] = str(e)
                result = f"validate: FAILED ({e})"
            else:
                report.validation[descriptor.module_id] = None
                result = "validate: ok"
            deps = ", ".join(descriptor.dependencies) or "-"
            self.logger.info(
                f"  {index:2d}. {descriptor.module_id:<20} deps: {deps:<32} {result}"
            )
        for module_id in plan.skipped:
            self.logger.info(f"      {module_id:<20} (skipped)")
        return report

    def rollback_last_run(self) -> RunReport:
        """
        Roll back every module the last run planned and recorded as succeeded
        or failed, newest first. Records kept from earlier runs are left alone.
        """
        report = RunReport()
        candidates = [
            module_id
            for module_id in self.run_state.planned
            if self.run_state.status(module_id) in (ModuleStatus.SUCCEEDED, ModuleStatus.FAILED)
        ]
        if not candidates:
            self.logger.info(f"{self.symbols['info']} Nothing to roll back.")
            return report

        context = self._new_context()
        if self.run_state.backup_dir is not None:
            try:
                context.backup_set = BackupSet.open(self.run_state.backup_dir, self.logger)
            except BackupError as e:
                self.logger.warning(f"{self.symbols['warning']} {e}")

        pairs: List[ModulePair] = []
        for module_id in candidates:
            descriptor = self.descriptors.get(module_id)
            if descriptor is None:
                self.logger.warning(
                    f"{self.symbols['warning']} {module_id} is recorded but no longer available; skipping"
                )
                continue
            pairs.append((descriptor, self._instantiate(descriptor, context)))
        pairs.sort(key=lambda pair: pair[0].ordinal, reverse=True)

        self._roll_back(pairs, report)
        self.run_state.complete()
        if report.rollback_errors:
            report.exit_code = EXIT_FAILURE
        return report

    def list_modules(self) -> List[Dict[str, Any]]:
        """
        One row per module in execution order.

        Raises:
            ResolverError: The module graph is invalid.
        """
        rows = []
        for descriptor in resolve_order(self.descriptors):
            status = self.run_state.status(descriptor.module_id)
            rows.append(
                {
                    "id": descriptor.module_id,
                    "description": descriptor.description,
                    "dependencies": list(descriptor.dependencies),
                    "idempotent": descriptor.idempotent,
                    "rollback": descriptor.rollback,
                    "status": status.value if status else "-",
                    "source": descriptor.source,
                }
            )
        return rows
