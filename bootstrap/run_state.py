"""
Persisted state of bootstrap runs.

The state file maps each module ID to its last status and is rewritten
atomically after every change, so an interrupted run can be resumed and
``--rollback`` knows what the last run touched.
"""

import datetime
import logging
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from common.atomic_utils import write_atomic

module_logger = logging.getLogger(__name__)

STATE_FORMAT_VERSION = 1


class ModuleStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"
    SKIPPED = "skipped"


class ModuleRecord(BaseModel):
    status: ModuleStatus = ModuleStatus.PENDING
    timestamp: str = ""
    message: Optional[str] = None


class RunRecord(BaseModel):
    version: int = STATE_FORMAT_VERSION
    run_id: str = ""
    started_at: str = ""
    completed: bool = False
    backup_dir: Optional[str] = None
    planned: List[str] = Field(default_factory=list)
    modules: Dict[str, ModuleRecord] = Field(default_factory=dict)


def _now() -> str:
    return datetime.datetime.now().astimezone().isoformat(timespec="seconds")


class RunState:
    """
    The state file and the record it holds.

    With ``persist=False`` (dry runs) every change stays in memory.
    """

    def __init__(
        self,
        state_file: Path,
        record: Optional[RunRecord] = None,
        persist: bool = True,
        logger: Optional[logging.Logger] = None,
    ):
        self.state_file = Path(state_file)
        self.record = record
        self.persist = persist
        self.logger = logger or module_logger

    @classmethod
    def load(
        cls,
        state_file: Path,
        persist: bool = True,
        logger: Optional[logging.Logger] = None,
    ) -> "RunState":
        """
        Read ``state_file``. A missing, unreadable or outdated file yields an
        empty state; the latter two are logged.
        """
        logger_to_use = logger or module_logger
        path = Path(state_file)
        record = None
        if path.is_file():
            try:
                record = RunRecord.model_validate_json(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger_to_use.warning(
                    f"Ignoring unreadable state file {path}: {e}"
                )
                record = None
            if record is not None and record.version != STATE_FORMAT_VERSION:
                logger_to_use.warning(
                    f"State file {path} has format version {record.version}, "
                    f"expected {STATE_FORMAT_VERSION}; starting fresh"
                )
                record = None
        return cls(path, record, persist, logger_to_use)

    @property
    def has_record(self) -> bool:
        return self.record is not None

    @property
    def completed(self) -> bool:
        return bool(self.record and self.record.completed)

    @property
    def modules(self) -> Dict[str, ModuleRecord]:
        return dict(self.record.modules) if self.record else {}

    @property
    def backup_dir(self) -> Optional[Path]:
        if self.record and self.record.backup_dir:
            return Path(self.record.backup_dir)
        return None

    @property
    def planned(self) -> List[str]:
        """Module IDs of the last run, in plan order."""
        return list(self.record.planned) if self.record else []

    def status(self, module_id: str) -> Optional[ModuleStatus]:
        if not self.record or module_id not in self.record.modules:
            return None
        return self.record.modules[module_id].status

    def succeeded(self, module_id: str) -> bool:
        return self.status(module_id) == ModuleStatus.SUCCEEDED

    def begin_run(self, module_ids: List[str], fresh: bool = False) -> bool:
        """
        Start a run over ``module_ids``.

        An incomplete previous run is resumed: succeeded modules keep their
        records and everything else in the plan goes back to pending. Records
        of modules outside the plan are kept either way, so earlier successes
        still satisfy dependencies.

        Returns:
            True when a previous run is being resumed.
        """
        resume = bool(self.record and not self.record.completed and not fresh)
        if resume:
            record = self.record
            for module_id in module_ids:
                if not self.succeeded(module_id):
                    record.modules[module_id] = ModuleRecord(
                        status=ModuleStatus.PENDING, timestamp=_now()
                    )
            record.planned = list(module_ids)
            self.logger.info(f"Resuming run {record.run_id}")
        else:
            previous = self.record.modules if self.record and not fresh else {}
            started = _now()
            record = RunRecord(
                run_id=datetime.datetime.now().strftime("%Y%m%d-%H%M%S"),
                started_at=started,
                planned=list(module_ids),
                modules={k: v for k, v in previous.items() if k not in module_ids},
            )
            for module_id in module_ids:
                record.modules[module_id] = ModuleRecord(
                    status=ModuleStatus.PENDING, timestamp=started
                )
            self.record = record
        self.save()
        return resume

    def mark(
        self, module_id: str, status: ModuleStatus, message: Optional[str] = None
    ) -> None:
        if self.record is None:
            self.record = RunRecord(run_id="adhoc", started_at=_now())
        self.record.modules[module_id] = ModuleRecord(
            status=status, timestamp=_now(), message=message
        )
        self.save()

    def set_backup_dir(self, path: Path) -> None:
        if self.record is None:
            return
        self.record.backup_dir = str(path)
        self.save()

    def complete(self) -> None:
        if self.record is None:
            return
        self.record.completed = True
        self.save()

    def save(self) -> None:
        """
        Write the record. A failed write is logged and the run carries on
        with the in-memory state.
        """
        if not self.persist or self.record is None:
            return
        try:
            write_atomic(
                self.state_file,
                self.record.model_dump_json(indent=2) + "\n",
                mode=0o600,
                current_logger=self.logger,
            )
        except OSError as e:
            self.logger.error(f"Could not save state to {self.state_file}: {e}")

    def reset(self) -> bool:
        """Forget all state. Returns True when a state file was removed."""
        self.record = None
        if self.persist and self.state_file.exists():
            self.state_file.unlink()
            return True
        return False
