import shutil

import pytest

from bootstrap.script_module import (
    ShellScriptModule,
    defines_function,
    parse_script_header,
)
from common.errors import ExecutionError, ValidationError, VerificationError
from conftest import completed

FULL_SCRIPT = """\
#!/usr/bin/env bash
# Module: 40-shell-config
# Description: Bash configuration
# Dependencies: 30-chezmoi lib/common.sh
# Idempotent: No
# Rollback: Yes

validate() {
    [[ -d "$HOME" ]]
}

execute() {
    echo "writing bashrc"
    echo "configured for $GIT_NAME" > "$HOME/.module-marker"
}

function verify() {
    [[ -f "$HOME/.module-marker" ]]
}

rollback() {
    rm -f "$HOME/.module-marker"
}
"""

MINIMAL_SCRIPT = """\
#!/usr/bin/env bash
validate() { true; }
execute() { true; }
"""


def _module(tmp_path, settings, context, content, module_id="40-shell-config"):
    script = tmp_path / f"{module_id}.sh"
    script.write_text(content)
    header = parse_script_header(content)
    return ShellScriptModule(script, module_id, header, settings, context)


def test_parse_script_header():
    header = parse_script_header(FULL_SCRIPT)
    assert header == {
        "description": "Bash configuration",
        "dependencies": ["30-chezmoi", "lib/common.sh"],
        "idempotent": False,
        "rollback": True,
    }


def test_parse_script_header_defaults():
    header = parse_script_header(MINIMAL_SCRIPT)
    assert header["description"] == ""
    assert header["dependencies"] == []
    assert header["rollback"] is False


def test_defines_function():
    assert defines_function(FULL_SCRIPT, "validate")
    assert defines_function(FULL_SCRIPT, "verify")
    assert not defines_function(MINIMAL_SCRIPT, "rollback")


def test_validate_requires_lifecycle_functions(tmp_path, settings, context):
    module = _module(tmp_path, settings, context, "#!/usr/bin/env bash\nvalidate() { true; }\n")
    with pytest.raises(ValidationError, match="does not define: execute"):
        module.validate()


def test_nonzero_exit_becomes_error_with_status(mocker, tmp_path, settings, context):
    run = mocker.patch("bootstrap.script_module.run_command", return_value=completed(3, stderr="nope"))
    module = _module(tmp_path, settings, context, FULL_SCRIPT)

    with pytest.raises(ValidationError) as validation:
        module.validate()
    assert validation.value.returncode == 3

    with pytest.raises(ExecutionError):
        module.execute()
    with pytest.raises(VerificationError):
        module.verify()

    command = run.call_args.args[0]
    assert command[0:2] == ["bash", "-c"]
    assert command[-1] == "verify"


def test_environment_passed_to_script(mocker, tmp_path, settings, context):
    run = mocker.patch("bootstrap.script_module.run_command", return_value=completed())
    context.data["git_name"] = "From Prereqs"
    module = _module(tmp_path, settings, context, FULL_SCRIPT)

    assert module.execute()

    env = run.call_args.kwargs["env"]
    assert env["HOME"] == str(settings.home)
    assert env["MODULE_ID"] == "40-shell-config"
    assert env["UNATTENDED"] == "1"
    assert env["GIT_NAME"] == "From Prereqs"
    assert env["GIT_EMAIL"] == "test@example.com"
    assert "BACKUP_DIR" not in env


def test_optional_functions(mocker, tmp_path, settings, context):
    run = mocker.patch("bootstrap.script_module.run_command")
    module = _module(tmp_path, settings, context, MINIMAL_SCRIPT)
    assert module.verify()
    assert module.rollback()
    run.assert_not_called()


@pytest.mark.skipif(shutil.which("bash") is None, reason="bash not available")
def test_script_runs_under_bash(tmp_path, settings, context, home):
    module = _module(tmp_path, settings, context, FULL_SCRIPT)
    assert module.validate()
    assert module.execute()
    assert (home / ".module-marker").read_text() == "configured for Test User\n"
    assert module.verify()
    assert module.rollback()
    assert not (home / ".module-marker").exists()
    with pytest.raises(VerificationError):
        module.verify()
