from __future__ import annotations

from contextlib import redirect_stdout
from pathlib import Path
import io
import tempfile
import textwrap
import unittest
from unittest.mock import patch

from buildconf import cli
from buildconf.build import CACHE_MARKER
from core.command_runner import RecordingCommandRunner

HOST_TOOLS = {
    "gcc": "/usr/bin/gcc",
    "g++": "/usr/bin/g++",
    "ccache": "/usr/bin/ccache",
    "cmake": "/usr/bin/cmake",
}


def fake_which(name: str) -> str | None:
    return HOST_TOOLS.get(name)


def cmake_responder(configure_returncode: int = 0):
    def respond(record):
        if "--version" in record.command:
            return "cmake version 3.22.1\n"
        return configure_returncode

    return respond


class ConfigureCommandTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.workspace = Path(self.temp_dir.name)
        self.runner = RecordingCommandRunner()
        self.runner.respond("cmake", callback=cmake_responder())
        self.env = {"PATH": "/usr/bin", "LD_LIBRARY_PATH": "/usr/local/lib"}
        self.which_patch = patch("buildconf.toolchains.shutil.which", side_effect=fake_which)
        self.system_patch = patch("buildconf.environment.platform.system", return_value="Linux")
        self.which_patch.start()
        self.system_patch.start()

    def tearDown(self) -> None:
        self.system_patch.stop()
        self.which_patch.stop()
        self.temp_dir.cleanup()

    def run_cli(self, *tokens: str, prompt=None) -> tuple[int, str]:
        buffer = io.StringIO()
        kwargs = {"prompt": prompt} if prompt is not None else {}
        with redirect_stdout(buffer):
            code = cli.execute(list(tokens), self.workspace, runner=self.runner, env=self.env, **kwargs)
        return code, buffer.getvalue()

    def configure_calls(self):
        return [record for record in self.runner.commands_for("cmake") if "--version" not in record.command]

    def test_default_configuration_installs_python_and_configures_both_trees(self) -> None:
        code, output = self.run_cli()

        self.assertEqual(code, 0)
        executables = [record.executable for record in self.runner.commands]
        self.assertEqual(executables, ["install_python_toolchain.sh", "cmake", "cmake", "cmake"])
        release, debug = self.configure_calls()
        self.assertIn("CMAKE_BUILD_TYPE=Release", release.command)
        self.assertIn("CMAKE_BUILD_TYPE=Debug", debug.command)
        self.assertEqual(
            release.env["LD_LIBRARY_PATH"],
            f"{self.workspace / 'deps/local/lib'}:{self.workspace / 'deps/local/lib64'}:/usr/local/lib",
        )
        self.assertEqual(release.env["INCLUDE_PATH"], str(self.workspace / "deps/local/include"))
        self.assertIn("BUILD CONFIGURATION", output)
        self.assertIn("Using ccache from /usr/bin/ccache.", output)
        self.assertIn("exec /usr/bin/ccache /usr/bin/gcc", (self.workspace / "deps/local/bin/cc").read_text())

    def test_no_python_skips_toolchain_install(self) -> None:
        code, _ = self.run_cli("--no-python", "--no-visualization")
        self.assertEqual(code, 0)
        self.assertEqual(self.runner.commands_for("install_python_toolchain.sh"), [])
        release = self.configure_calls()[0]
        self.assertIn("TC_BUILD_PYTHON=0", release.command)
        self.assertIn("TC_BUILD_VISUALIZATION_CLIENT=0", release.command)

    def test_target_ios_configures_without_python(self) -> None:
        code, _ = self.run_cli("--target-ios")
        self.assertEqual(code, 0)
        self.assertEqual(self.runner.commands_for("install_python_toolchain.sh"), [])
        release = self.configure_calls()[0]
        for definition in ("TC_BUILD_IOS=1", "TC_BUILD_PYTHON=0", "RELEASE_OPT_FOR_SIZE=1", "TC_BUILD_CAPI=1"):
            self.assertIn(definition, release.command)

    def test_help_prints_usage_and_fails(self) -> None:
        code, output = self.run_cli("--no-python", "--help", "--bogus")
        self.assertEqual(code, 1)
        self.assertIn("Usage: configure <options>", output)
        self.assertEqual(self.runner.commands, [])

    def test_missing_definition_value_runs_nothing(self) -> None:
        code, output = self.run_cli("-D")
        self.assertEqual(code, 1)
        self.assertIn("Error: Option -D requires a value", output)
        self.assertIn("To get help, run configure --help", output)
        self.assertEqual(self.runner.commands, [])

    def test_unknown_flag_is_rejected(self) -> None:
        code, output = self.run_cli("--with-cuda")
        self.assertEqual(code, 1)
        self.assertIn("Unrecognized option: --with-cuda", output)
        self.assertEqual(self.runner.commands, [])

    def test_python_without_visualization_fails_before_side_effects(self) -> None:
        code, output = self.run_cli("--no-visualization")
        self.assertEqual(code, 1)
        self.assertIn("--with-visualization", output)
        self.assertEqual(self.runner.commands, [])
        self.assertFalse((self.workspace / "deps").exists())

    def test_cmake_failure_exit_code_is_mirrored(self) -> None:
        self.runner.respond("cmake", callback=cmake_responder(configure_returncode=4))
        code, output = self.run_cli("--no-python", "--no-visualization")
        self.assertEqual(code, 4)
        self.assertEqual(len(self.configure_calls()), 1)
        self.assertIn("Release", output)

    def test_unstartable_cmake_is_reported(self) -> None:
        def respond(record):
            if "--version" in record.command:
                return "cmake version 3.22.1\n"
            raise PermissionError(13, "Permission denied", record.command[0])

        self.runner.respond("cmake", callback=respond)
        code, output = self.run_cli("--no-python", "--no-visualization")
        self.assertEqual(code, 1)
        self.assertIn("Error: CMake configuration of the Release tree could not start", output)
        self.assertEqual(len(self.configure_calls()), 1)

    def test_failed_python_install_aborts_configuration(self) -> None:
        self.runner.respond("install_python_toolchain.sh", returncode=1)
        code, output = self.run_cli()
        self.assertEqual(code, 1)
        self.assertIn("Error reported installing the python toolchain.", output)
        self.assertEqual(self.configure_calls(), [])

    def test_missing_compiler_is_reported(self) -> None:
        with patch("buildconf.toolchains.shutil.which", return_value=None):
            code, output = self.run_cli("--no-python", "--no-visualization")
        self.assertEqual(code, 1)
        self.assertIn("set manually with CC=<comp>", output)
        self.assertEqual(self.configure_calls(), [])

    def test_rerun_clears_cache_marker(self) -> None:
        release = self.workspace / "release"
        release.mkdir()
        (release / CACHE_MARKER).write_text("stale")
        code, _ = self.run_cli("--no-python", "--no-visualization")
        self.assertEqual(code, 0)
        self.assertFalse((release / CACHE_MARKER).exists())

    def test_generator_from_environment(self) -> None:
        self.env["GENERATOR"] = "-G 'Unix Makefiles'"
        self.run_cli("--no-python", "--no-visualization")
        self.assertEqual(self.configure_calls()[0].command[1:3], ["-G", "Unix Makefiles"])

    def test_settings_file_seeds_options(self) -> None:
        (self.workspace / "configure.toml").write_text(
            textwrap.dedent(
                """
                [options]
                python = false
                visualization = false

                [configure]
                generator = "Ninja"
                definitions = ["FROM_FILE=1"]
                """
            )
        )
        code, _ = self.run_cli("-D", "FROM_CLI=1")
        self.assertEqual(code, 0)
        self.assertEqual(self.runner.commands_for("install_python_toolchain.sh"), [])
        release = self.configure_calls()[0]
        self.assertEqual(release.command[1:3], ["-G", "Ninja"])
        self.assertLess(release.command.index("FROM_FILE=1"), release.command.index("FROM_CLI=1"))

    def test_invalid_settings_file_is_reported(self) -> None:
        (self.workspace / "configure.toml").write_text("[options]\npython = 'yes'\n")
        code, output = self.run_cli()
        self.assertEqual(code, 1)
        self.assertIn("Error:", output)
        self.assertEqual(self.runner.commands, [])


class ActionCommandTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.workspace = Path(self.temp_dir.name)
        self.runner = RecordingCommandRunner()
        self.release = self.workspace / "release"
        self.release.mkdir()

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def run_cli(self, *tokens: str, env=None, prompt=input) -> tuple[int, str]:
        buffer = io.StringIO()
        with redirect_stdout(buffer):
            code = cli.execute(list(tokens), self.workspace, runner=self.runner, env=env or {}, prompt=prompt)
        return code, buffer.getvalue()

    def test_cleanup_with_yes_removes_build_trees(self) -> None:
        code, output = self.run_cli("--cleanup", "--yes")
        self.assertEqual(code, 0)
        self.assertFalse(self.release.exists())
        self.assertIn("erases all build folders", output)
        self.assertEqual(self.runner.commands, [])

    def test_cleanup_declined_keeps_everything(self) -> None:
        code, output = self.run_cli("--cleanup", prompt=lambda _: "no")
        self.assertEqual(code, 0)
        self.assertTrue(self.release.exists())
        self.assertIn("Doing nothing!", output)

    def test_install_python_toolchain_only(self) -> None:
        code, _ = self.run_cli("--install-python-toolchain", "--virtualenv", "/opt/venv/bin/virtualenv")
        self.assertEqual(code, 0)
        self.assertEqual(len(self.runner.commands), 1)
        record = self.runner.commands[0]
        self.assertEqual(record.executable, "install_python_toolchain.sh")
        self.assertEqual(record.cwd, str(self.workspace))
        self.assertEqual(record.env, {"VIRTUALENV": "/opt/venv/bin/virtualenv"})

    def test_install_python_toolchain_uses_environment_virtualenv(self) -> None:
        self.run_cli("--install-python-toolchain", env={"VIRTUALENV": "/usr/bin/virtualenv"})
        self.assertEqual(self.runner.commands[0].env, {"VIRTUALENV": "/usr/bin/virtualenv"})

    def test_install_python_toolchain_failure_status(self) -> None:
        self.runner.respond("install_python_toolchain.sh", returncode=5)
        code, output = self.run_cli("--install-python-toolchain")
        self.assertEqual(code, 5)
        self.assertIn("Error reported installing the python toolchain.", output)


if __name__ == "__main__":
    unittest.main()
