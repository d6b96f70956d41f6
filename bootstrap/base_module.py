"""
Base class for all bootstrap modules.

Every module goes through the same lifecycle: ``validate`` checks that it
can run, ``execute`` does the work, ``verify`` confirms the result and
``rollback`` undoes it when a later step fails.
"""

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from setup.config_models import BootstrapSettings

if TYPE_CHECKING:
    from bootstrap.context import RunContext

DEFAULT_METADATA: Dict[str, Any] = {
    "dependencies": [],  # module IDs that must have succeeded first
    "description": "",
    "idempotent": True,
    "rollback": False,  # True for "yes" and "partial"
}


class BaseModule(ABC):
    """
    Base class for all bootstrap modules.

    Subclasses are registered with ``ModuleRegistry.register`` which sets
    ``module_id`` and ``metadata``. The lifecycle methods return True on
    success. A False return or an exception is turned into the matching
    error by the orchestrator.
    """

    module_id: str = ""
    metadata: Dict[str, Any] = dict(DEFAULT_METADATA)

    def __init__(
        self,
        settings: BootstrapSettings,
        context: "RunContext",
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the module.

        Args:
            settings: The bootstrap settings.
            context: Run context shared by all modules of one run.
            logger: Optional logger instance. If not provided, a new logger will be created.
        """
        self.settings = settings
        self.context = context
        self.logger = logger or logging.getLogger(self.__class__.__name__)

    @property
    def symbols(self) -> Dict[str, str]:
        return self.settings.symbols

    @abstractmethod
    def validate(self) -> bool:
        """
        Check that the module can run. Must not change the system.

        Returns:
            True if the module may execute, False otherwise.
        """
        pass

    @abstractmethod
    def execute(self) -> bool:
        """
        Do the module's work. Must be safe to run again.

        Returns:
            True if the work was done, False otherwise.
        """
        pass

    @abstractmethod
    def verify(self) -> bool:
        """
        Confirm the end state ``execute`` was meant to produce.

        Returns:
            True if the end state is in place, False otherwise.
        """
        pass

    def rollback(self) -> bool:
        """
        Undo what ``execute`` changed.

        Modules without rollback support have nothing to undo.

        Returns:
            True if the rollback was successful, False otherwise.
        """
        self.logger.info(f"Nothing to roll back for {self.module_id}")
        return True

    def restore_protected(self, *paths) -> bool:
        """
        Restore ``paths`` (every protected path when empty) from the run's
        backup set. Used by modules whose rollback is "put the files back".
        """
        backup_set = self.context.backup_set
        if backup_set is None:
            self.logger.warning(f"No backup set recorded; cannot roll back {self.module_id}")
            return False
        backup_set.restore(list(paths) or None)
        return True

    def get_dependencies(self) -> List[str]:
        return list(self.metadata.get("dependencies", []))

    def get_description(self) -> str:
        return str(self.metadata.get("description", ""))

    def is_idempotent(self) -> bool:
        return bool(self.metadata.get("idempotent", True))

    def supports_rollback(self) -> bool:
        return bool(self.metadata.get("rollback", False))
