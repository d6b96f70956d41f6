# tests/conftest.py
import logging
import subprocess
from typing import Callable, Dict, List, Optional
from unittest.mock import MagicMock

import pytest

from bootstrap.base_module import BaseModule
from bootstrap.context import RunContext
from bootstrap.registry import ModuleDescriptor, parse_module_id
from bootstrap.run_state import RunState
from setup.config_models import BootstrapSettings

TEST_SYMBOLS = {
    "success": "OK",
    "error": "ERR",
    "warning": "WARN",
    "info": "INFO",
    "step": ">",
    "gear": "*",
    "package": "PKG",
    "rocket": "GO",
    "sparkles": "DONE",
    "critical": "CRIT",
    "debug": "DBG",
}


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """Keep the developer's environment out of settings loading."""
    for key in ("SKIP_MODULES", "SKIP_DEVTOOLS", "ALLOW_ROOT", "XDG_CONFIG_HOME"):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def reset_root_logging():
    """Drop handlers installed by setup_logging during a test."""
    root = logging.getLogger()
    before = set(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in before:
            root.removeHandler(handler)
    root.setLevel(level)


@pytest.fixture
def home(tmp_path):
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def settings(home):
    """Unattended settings rooted in a temporary home directory."""
    return BootstrapSettings(
        home=home,
        unattended=True,
        git_name="Test User",
        git_email="test@example.com",
        symbols=dict(TEST_SYMBOLS),
    )


@pytest.fixture
def mock_logger():
    """Fixture to create a mock logger for testing."""
    return MagicMock(spec=logging.Logger)


@pytest.fixture
def run_state(settings):
    return RunState(settings.state_file)


@pytest.fixture
def context(settings, run_state):
    return RunContext(settings, run_state)


def completed(returncode: int = 0, stdout: str = "", stderr: str = "", args=None):
    return subprocess.CompletedProcess(
        args=args or [], returncode=returncode, stdout=stdout, stderr=stderr
    )


class FakePackageManager:
    """Tracks an installed set; packages in ``broken`` never install."""

    def __init__(self, installed=(), broken=()):
        self.installed = set(installed)
        self.broken = set(broken)
        self.install_calls = []
        self.removed = []

    def update(self):
        return True

    def missing(self, packages):
        return [p for p in packages if p not in self.installed]

    def install(self, packages):
        self.install_calls.append(list(packages))
        self.installed |= {p for p in packages if p not in self.broken}
        return not (set(packages) & self.broken)

    def remove(self, packages):
        self.removed += list(packages)
        self.installed -= set(packages)
        return True


class FakeModule(BaseModule):
    """
    Module whose lifecycle is scripted by the test. ``calls`` collects
    (module_id, phase) tuples across all fake modules of a test.
    """

    def __init__(self, settings, context, logger=None, behaviour=None, calls=None):
        super().__init__(settings, context, logger)
        self.behaviour = behaviour or {}
        self.calls = calls if calls is not None else []

    def _phase(self, phase: str) -> bool:
        self.calls.append((self.module_id, phase))
        action = self.behaviour.get(phase, True)
        if callable(action):
            return action(self)
        if isinstance(action, BaseException):
            raise action
        return action

    def validate(self) -> bool:
        return self._phase("validate")

    def execute(self) -> bool:
        return self._phase("execute")

    def verify(self) -> bool:
        return self._phase("verify")

    def rollback(self) -> bool:
        return self._phase("rollback")


def fake_descriptor(
    module_id: str,
    dependencies: Optional[List[str]] = None,
    rollback: bool = True,
    behaviour: Optional[Dict[str, object]] = None,
    calls: Optional[list] = None,
) -> ModuleDescriptor:
    ordinal, name = parse_module_id(module_id)

    def factory(settings, context, logger=None) -> FakeModule:
        module = FakeModule(settings, context, logger, behaviour=behaviour, calls=calls)
        module.module_id = module_id
        return module

    return ModuleDescriptor(
        module_id=module_id,
        ordinal=ordinal,
        name=name,
        description=f"fake {name}",
        dependencies=dependencies or [],
        rollback=rollback,
        source="test",
        factory=factory,
    )


@pytest.fixture
def make_descriptors() -> Callable[..., Dict[str, ModuleDescriptor]]:
    """Build a descriptor map from (module_id, dependencies) specs."""

    def _make(specs, calls=None, behaviours=None, no_rollback=()):
        behaviours = behaviours or {}
        return {
            module_id: fake_descriptor(
                module_id,
                deps,
                rollback=module_id not in no_rollback,
                behaviour=behaviours.get(module_id),
                calls=calls,
            )
            for module_id, deps in specs
        }

    return _make
