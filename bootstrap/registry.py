"""
Registry and dependency resolver for bootstrap modules.

Built-in modules register themselves with the ``ModuleRegistry.register``
decorator. External modules are ``NN-name.sh`` scripts found by
``ModuleRegistry.discover_scripts``. Both are described by a
``ModuleDescriptor``; ``resolve_order`` turns a set of descriptors into the
execution order or raises ``ResolverError``.
"""

import functools
import importlib
import logging
import os
import pkgutil
import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field

from bootstrap.base_module import DEFAULT_METADATA, BaseModule
from bootstrap.script_module import ShellScriptModule, parse_script_header
from common.errors import ResolverError

module_logger = logging.getLogger(__name__)

MODULE_ID_RE = re.compile(r"^(\d{2})-([a-z0-9][a-z0-9-]*)$")
SCRIPT_NAME_RE = re.compile(r"^(\d{2}-[a-z0-9][a-z0-9-]*)\.sh$")


def parse_module_id(module_id: str) -> Tuple[int, str]:
    """
    Split ``NN-name`` into its ordinal and name.

    Raises:
        ResolverError: ``module_id`` does not have that shape.
    """
    match = MODULE_ID_RE.match(module_id)
    if not match:
        raise ResolverError(
            f"Invalid module ID '{module_id}' (expected NN-name, e.g. 30-chezmoi)"
        )
    return int(match.group(1)), match.group(2)


class ModuleDescriptor(BaseModel):
    """Everything the resolver and orchestrator need to know about a module."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    module_id: str
    ordinal: int
    name: str
    description: str = ""
    dependencies: List[str] = Field(default_factory=list)
    idempotent: bool = True
    rollback: bool = False
    source: str = "builtin"
    factory: Callable[..., BaseModule]

    def create(self, settings, context, logger: Optional[logging.Logger] = None) -> BaseModule:
        return self.factory(settings, context, logger)


class ModuleRegistry:
    """
    Registry for built-in modules.

    This class provides a registry for module classes to register themselves
    and methods for turning them, or a directory of scripts, into descriptors.
    """

    _registry: Dict[str, Type[BaseModule]] = {}

    @classmethod
    def register(cls, module_id: str, metadata: Optional[Dict[str, Any]] = None):
        """
        Decorator for registering module classes.

        Args:
            module_id: ``NN-name`` identifier of the module.
            metadata: dependencies, description, idempotent and rollback flags.

        Returns:
            A decorator function that registers the module class.
        """
        parse_module_id(module_id)

        def decorator(module_class: Type[BaseModule]) -> Type[BaseModule]:
            if module_id in cls._registry:
                raise ResolverError(f"Module '{module_id}' already registered")
            module_class.module_id = module_id
            module_class.metadata = {**DEFAULT_METADATA, **(metadata or {})}
            cls._registry[module_id] = module_class
            return module_class

        return decorator

    @classmethod
    def get_module(cls, module_id: str) -> Type[BaseModule]:
        """
        Raises:
            KeyError: If no module with the given ID is registered.
        """
        if module_id not in cls._registry:
            raise KeyError(f"No module registered with ID '{module_id}'")
        return cls._registry[module_id]

    @classmethod
    def get_all_modules(cls) -> Dict[str, Type[BaseModule]]:
        return cls._registry.copy()

    @staticmethod
    def describe(module_class: Type[BaseModule]) -> ModuleDescriptor:
        ordinal, name = parse_module_id(module_class.module_id)
        metadata = module_class.metadata
        return ModuleDescriptor(
            module_id=module_class.module_id,
            ordinal=ordinal,
            name=name,
            description=str(metadata.get("description", "")),
            dependencies=list(metadata.get("dependencies", [])),
            idempotent=bool(metadata.get("idempotent", True)),
            rollback=bool(metadata.get("rollback", False)),
            source="builtin",
            factory=module_class,
        )

    @classmethod
    def builtin_descriptors(
        cls, logger: Optional[logging.Logger] = None
    ) -> Dict[str, ModuleDescriptor]:
        """Descriptors of every module under ``bootstrap.modules``."""
        cls._import_builtin_modules(logger or module_logger)
        return {
            module_id: cls.describe(module_class)
            for module_id, module_class in cls._registry.items()
        }

    @staticmethod
    def _import_builtin_modules(logger: logging.Logger) -> None:
        """Import every module of the ``bootstrap.modules`` package so they register."""
        import bootstrap.modules

        modules_path = os.path.dirname(bootstrap.modules.__file__)
        for _, module_name, _ in pkgutil.iter_modules([modules_path]):
            importlib.import_module(f"bootstrap.modules.{module_name}")
            logger.debug(f"Imported bootstrap module: {module_name}")

    @staticmethod
    def discover_scripts(
        directory: Path, logger: Optional[logging.Logger] = None
    ) -> Dict[str, ModuleDescriptor]:
        """
        Describe every ``NN-name.sh`` file in ``directory``.

        Other files are ignored, as are header dependencies that are not
        module IDs (library paths such as ``lib/common.sh``).

        Raises:
            ResolverError: ``directory`` does not exist.
        """
        logger_to_use = logger or module_logger
        root = Path(directory)
        if not root.is_dir():
            raise ResolverError(f"Module directory not found: {root}")

        descriptors: Dict[str, ModuleDescriptor] = {}
        for script in sorted(root.iterdir()):
            match = SCRIPT_NAME_RE.match(script.name)
            if not match or not script.is_file():
                continue
            module_id = match.group(1)
            ordinal, name = parse_module_id(module_id)
            header = parse_script_header(script.read_text(encoding="utf-8"))
            dependencies = [
                dep for dep in header["dependencies"] if MODULE_ID_RE.match(dep)
            ]
            descriptors[module_id] = ModuleDescriptor(
                module_id=module_id,
                ordinal=ordinal,
                name=name,
                description=header["description"],
                dependencies=dependencies,
                idempotent=header["idempotent"],
                rollback=header["rollback"],
                source=str(script),
                factory=functools.partial(
                    ShellScriptModule,
                    script,
                    module_id,
                    {
                        "description": header["description"],
                        "dependencies": dependencies,
                        "idempotent": header["idempotent"],
                        "rollback": header["rollback"],
                    },
                ),
            )
            logger_to_use.debug(f"Discovered module script: {script.name}")
        return descriptors


def find_module(
    descriptors: Dict[str, ModuleDescriptor], token: str
) -> ModuleDescriptor:
    """
    Look a module up by full ID (``50-secrets``) or name (``secrets``).

    Raises:
        ResolverError: No module matches.
    """
    if token in descriptors:
        return descriptors[token]
    for descriptor in descriptors.values():
        if descriptor.name == token:
            return descriptor
    raise ResolverError(f"Unknown module '{token}'")


def resolve_order(
    descriptors: Dict[str, ModuleDescriptor]
) -> List[ModuleDescriptor]:
    """
    Order ``descriptors`` for execution.

    Modules run in ordinal order. Every dependency must exist, the graph must
    be acyclic and a module may only depend on modules with a lower ordinal.

    Raises:
        ResolverError: Duplicate ordinal, missing dependency, cycle or
            forward reference.
    """
    by_ordinal: Dict[int, List[str]] = {}
    for descriptor in descriptors.values():
        by_ordinal.setdefault(descriptor.ordinal, []).append(descriptor.module_id)
    for ordinal, module_ids in sorted(by_ordinal.items()):
        if len(module_ids) > 1:
            raise ResolverError(
                f"Duplicate ordinal {ordinal:02d}: {', '.join(sorted(module_ids))}"
            )

    for descriptor in descriptors.values():
        for dependency in descriptor.dependencies:
            if dependency not in descriptors:
                raise ResolverError(
                    f"Module '{descriptor.module_id}' depends on unknown module '{dependency}'",
                    module_id=descriptor.module_id,
                )

    visited = set()
    temp_visited: List[str] = []

    def visit(module_id: str) -> None:
        if module_id in temp_visited:
            cycle = temp_visited[temp_visited.index(module_id):] + [module_id]
            raise ResolverError(
                f"Circular dependency detected: {' -> '.join(cycle)}",
                module_id=module_id,
            )
        if module_id in visited:
            return
        temp_visited.append(module_id)
        for dependency in descriptors[module_id].dependencies:
            visit(dependency)
        temp_visited.pop()
        visited.add(module_id)

    for module_id in sorted(descriptors):
        visit(module_id)

    for descriptor in descriptors.values():
        for dependency in descriptor.dependencies:
            if descriptors[dependency].ordinal >= descriptor.ordinal:
                raise ResolverError(
                    f"Module '{descriptor.module_id}' depends on '{dependency}', "
                    "which does not come earlier in the ordering",
                    module_id=descriptor.module_id,
                )

    return sorted(descriptors.values(), key=lambda d: d.ordinal)
