"""
Modular bootstrap framework.

This package sequences the numbered bootstrap modules: it resolves their
dependencies, runs each through validate/execute/verify, persists the run
state and rolls back from the run's backup set when a module fails.
"""

from bootstrap.base_module import BaseModule
from bootstrap.context import RunContext
from bootstrap.orchestrator import BootstrapOrchestrator
from bootstrap.registry import ModuleDescriptor, ModuleRegistry, resolve_order

__all__ = [
    "BaseModule",
    "BootstrapOrchestrator",
    "ModuleDescriptor",
    "ModuleRegistry",
    "RunContext",
    "resolve_order",
]
