import pytest

from bootstrap.base_module import BaseModule
from bootstrap.registry import (
    ModuleRegistry,
    find_module,
    parse_module_id,
    resolve_order,
)
from bootstrap.script_module import ShellScriptModule
from common.errors import ResolverError

BUILTIN_IDS = [
    "00-prereqs",
    "10-backup",
    "20-system-packages",
    "30-chezmoi",
    "40-shell-config",
    "50-secrets",
    "60-devtools",
]


@pytest.fixture
def empty_registry(mocker):
    mocker.patch.object(ModuleRegistry, "_registry", {})


def test_parse_module_id():
    assert parse_module_id("30-chezmoi") == (30, "chezmoi")
    assert parse_module_id("20-system-packages") == (20, "system-packages")
    for bad in ("3-chezmoi", "30_chezmoi", "30-", "chezmoi", "30-Chezmoi"):
        with pytest.raises(ResolverError):
            parse_module_id(bad)


def test_register_sets_id_and_metadata(empty_registry):
    @ModuleRegistry.register("70-extra", metadata={"dependencies": ["00-prereqs"], "rollback": True})
    class ExtraModule(BaseModule):
        def validate(self):
            return True

        def execute(self):
            return True

        def verify(self):
            return True

    assert ExtraModule.module_id == "70-extra"
    assert ExtraModule.metadata["dependencies"] == ["00-prereqs"]
    assert ExtraModule.metadata["idempotent"] is True
    assert ModuleRegistry.get_module("70-extra") is ExtraModule

    descriptor = ModuleRegistry.describe(ExtraModule)
    assert descriptor.ordinal == 70
    assert descriptor.name == "extra"
    assert descriptor.rollback is True


def test_register_duplicate_raises(empty_registry):
    ModuleRegistry.register("70-extra")(type("A", (BaseModule,), {}))
    with pytest.raises(ResolverError):
        ModuleRegistry.register("70-extra")(type("B", (BaseModule,), {}))


def test_register_invalid_id(empty_registry):
    with pytest.raises(ResolverError):
        ModuleRegistry.register("extra")


def test_get_module_unknown(empty_registry):
    with pytest.raises(KeyError):
        ModuleRegistry.get_module("99-nothing")


def test_builtin_descriptors():
    descriptors = ModuleRegistry.builtin_descriptors()
    assert sorted(descriptors) == BUILTIN_IDS
    assert [d.module_id for d in resolve_order(descriptors)] == BUILTIN_IDS
    assert descriptors["30-chezmoi"].dependencies == ["00-prereqs", "20-system-packages"]
    assert descriptors["00-prereqs"].rollback is False
    assert descriptors["50-secrets"].rollback is True


def test_resolve_order_sorts_by_ordinal(make_descriptors):
    descriptors = make_descriptors(
        [("30-c", ["10-a"]), ("10-a", []), ("20-b", ["10-a"])]
    )
    assert [d.module_id for d in resolve_order(descriptors)] == ["10-a", "20-b", "30-c"]


def test_resolve_order_unknown_dependency(make_descriptors):
    descriptors = make_descriptors([("10-a", ["05-missing"])])
    with pytest.raises(ResolverError, match="unknown module '05-missing'"):
        resolve_order(descriptors)


def test_resolve_order_cycle(make_descriptors):
    descriptors = make_descriptors([("10-a", ["20-b"]), ("20-b", ["10-a"])])
    with pytest.raises(ResolverError, match="Circular dependency detected: 10-a -> 20-b -> 10-a"):
        resolve_order(descriptors)


def test_resolve_order_duplicate_ordinal(make_descriptors):
    descriptors = make_descriptors([("10-a", []), ("10-b", [])])
    with pytest.raises(ResolverError, match="Duplicate ordinal 10"):
        resolve_order(descriptors)


def test_resolve_order_forward_reference(make_descriptors):
    descriptors = make_descriptors([("10-a", ["20-b"]), ("20-b", [])])
    with pytest.raises(ResolverError, match="does not come earlier"):
        resolve_order(descriptors)


def test_find_module_by_id_or_name(make_descriptors):
    descriptors = make_descriptors([("50-secrets", []), ("60-devtools", [])])
    assert find_module(descriptors, "50-secrets").module_id == "50-secrets"
    assert find_module(descriptors, "devtools").module_id == "60-devtools"
    with pytest.raises(ResolverError, match="Unknown module"):
        find_module(descriptors, "nothing")


SCRIPT = """\
#!/usr/bin/env bash
# Description: Shell configuration
# Dependencies: 30-chezmoi, lib/common.sh
# Idempotent: Yes
# Rollback: Partial
validate() { true; }
execute() { true; }
"""


def test_discover_scripts(tmp_path, settings, context):
    (tmp_path / "40-shell-config.sh").write_text(SCRIPT)
    (tmp_path / "README.md").write_text("not a module")
    (tmp_path / "helper.sh").write_text("true")

    descriptors = ModuleRegistry.discover_scripts(tmp_path)

    assert list(descriptors) == ["40-shell-config"]
    descriptor = descriptors["40-shell-config"]
    assert descriptor.description == "Shell configuration"
    assert descriptor.dependencies == ["30-chezmoi"]
    assert descriptor.idempotent is True
    assert descriptor.rollback is True
    assert descriptor.source == str(tmp_path / "40-shell-config.sh")

    module = descriptor.create(settings, context)
    assert isinstance(module, ShellScriptModule)
    assert module.module_id == "40-shell-config"
    assert module.get_dependencies() == ["30-chezmoi"]


def test_discover_scripts_missing_directory(tmp_path):
    with pytest.raises(ResolverError):
        ModuleRegistry.discover_scripts(tmp_path / "missing")
