"""Tests for SystemEnvironment against the real process and host."""

import os
import subprocess
import sys
import textwrap
import threading
from pathlib import Path

import psutil
import pytest

from envfacade.environment import Environment
from envfacade.errors import InvalidArgumentError, NotFoundError
from envfacade.models import EnvironmentScope, OperatingSystemInfo, SpecialFolder, SpecialFolderOption
from envfacade.system import SystemEnvironment

SRC_DIR = Path(__file__).resolve().parents[1] / "src"


@pytest.fixture
def env(tmp_path) -> SystemEnvironment:
    """SystemEnvironment whose user/machine files live in tmp_path."""
    return SystemEnvironment(
        user_store_path=tmp_path / "user.conf",
        machine_store_path=tmp_path / "environment",
    )


def run_snippet(code: str, cwd: Path) -> subprocess.CompletedProcess:
    """Run code in a fresh interpreter that can import envfacade."""
    child_env = dict(os.environ)
    child_env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(SRC_DIR), child_env.get("PYTHONPATH")]))
    return subprocess.run(
        [sys.executable, "-c", textwrap.dedent(code)],
        cwd=cwd,
        env=child_env,
        capture_output=True,
        text=True,
        timeout=60,
    )


def test_is_an_environment(env):
    """Test SystemEnvironment satisfies the capability set."""
    assert isinstance(env, Environment)


class TestCurrentDirectory:
    """Tests for the working directory pair."""

    def test_set_then_get_round_trips(self, env, tmp_path, monkeypatch):
        """Test chdir then getcwd lands in the target."""
        monkeypatch.chdir(os.getcwd())  # Restored after the test
        target = tmp_path / "work"
        target.mkdir()

        env.set_current_directory(str(target))

        assert os.path.samefile(env.get_current_directory(), target)

    def test_accepts_path_objects(self, env, tmp_path, monkeypatch):
        """Test set_current_directory accepts a Path."""
        monkeypatch.chdir(os.getcwd())

        env.set_current_directory(tmp_path)

        assert os.path.samefile(env.get_current_directory(), tmp_path)

    @pytest.mark.parametrize("path", ["", None])
    def test_empty_path_is_invalid(self, env, path):
        """Test empty and None paths are rejected."""
        with pytest.raises(InvalidArgumentError):
            env.set_current_directory(path)

    def test_missing_path_is_not_found(self, env, tmp_path):
        """Test a missing directory raises and leaves the cwd alone."""
        before = os.getcwd()

        with pytest.raises(NotFoundError):
            env.set_current_directory(str(tmp_path / "missing"))

        assert os.getcwd() == before

    def test_file_is_not_found(self, env, tmp_path):
        """Test a regular file is not a valid directory."""
        a_file = tmp_path / "file.txt"
        a_file.write_text("x")

        with pytest.raises(NotFoundError):
            env.set_current_directory(str(a_file))


class TestProcessVariables:
    """Tests for process scoped variables."""

    NAME = "ENVFACADE_SYSTEM_TEST"

    @pytest.fixture(autouse=True)
    def clean(self, monkeypatch):
        monkeypatch.delenv(self.NAME, raising=False)
        yield
        os.environ.pop(self.NAME, None)

    def test_set_then_get_round_trips(self, env):
        """Test a set variable reaches os.environ and reads back."""
        env.set_environment_variable(self.NAME, "value with spaces")

        assert env.get_environment_variable(self.NAME) == "value with spaces"
        assert os.environ[self.NAME] == "value with spaces"

    def test_empty_value_deletes(self, env):
        """Test setting an empty value removes it from os.environ."""
        env.set_environment_variable(self.NAME, "x")
        env.set_environment_variable(self.NAME, "")

        assert env.get_environment_variable(self.NAME) is None
        assert self.NAME not in os.environ

    def test_unset_variable_is_none(self, env):
        """Test an unset variable reads as None."""
        assert env.get_environment_variable(self.NAME) is None

    def test_get_all_matches_get(self, env):
        """Test every listed variable reads back with get."""
        env.set_environment_variable(self.NAME, "1")
        everything = env.get_environment_variables()

        assert everything[self.NAME] == "1"
        for name, value in everything.items():
            assert env.get_environment_variable(name) == value

    def test_invalid_names(self, env):
        """Test malformed names are rejected."""
        with pytest.raises(InvalidArgumentError):
            env.set_environment_variable("A=B", "x")
        with pytest.raises(InvalidArgumentError):
            env.get_environment_variable("")

    def test_expand(self, env):
        """Test expansion reads os.environ and keeps unknown tokens."""
        env.set_environment_variable(self.NAME, "expanded")

        assert env.expand_environment_variables(f"<%{self.NAME}%> <%ENVFACADE_UNSET_X%>") == (
            "<expanded> <%ENVFACADE_UNSET_X%>"
        )


@pytest.mark.skipif(sys.platform == "win32", reason="registry-backed on Windows")
class TestPersistedScopes:
    """Tests for user and machine scope on POSIX hosts."""

    def test_user_scope_persists_to_file(self, env, tmp_path):
        """Test user scope writes land in the user file."""
        env.set_environment_variable("EDITOR", "vim", EnvironmentScope.USER)

        assert (tmp_path / "user.conf").read_text() == "EDITOR=vim\n"
        assert env.get_environment_variable("EDITOR", "user") == "vim"
        assert SystemEnvironment(user_store_path=tmp_path / "user.conf").get_environment_variable(
            "EDITOR", EnvironmentScope.USER
        ) == "vim"

    def test_user_scope_does_not_touch_process(self, env, monkeypatch):
        """Test user scope writes leave os.environ alone."""
        monkeypatch.delenv("ENVFACADE_USER_ONLY", raising=False)

        env.set_environment_variable("ENVFACADE_USER_ONLY", "1", EnvironmentScope.USER)

        assert env.get_environment_variable("ENVFACADE_USER_ONLY") is None

    def test_machine_scope_delete(self, env, tmp_path):
        """Test deleting a machine variable rewrites the file."""
        (tmp_path / "environment").write_text('PATH="/usr/local/bin:/usr/bin"\nLANG=C\n')

        env.set_environment_variable("LANG", None, EnvironmentScope.MACHINE)

        assert env.get_environment_variables(EnvironmentScope.MACHINE) == {"PATH": "/usr/local/bin:/usr/bin"}

    def test_empty_scope(self, env):
        """Test a missing user file reads as no variables."""
        assert env.get_environment_variables(EnvironmentScope.USER) == {}

    def test_machine_name_with_newline_is_rejected(self, env, tmp_path):
        """Test a newline in a machine scope name cannot add an assignment."""
        path = tmp_path / "environment"
        path.write_text("LANG=C\n")

        with pytest.raises(InvalidArgumentError):
            env.set_environment_variable("A\nLD_PRELOAD", "/tmp/evil.so", EnvironmentScope.MACHINE)

        assert path.read_text() == "LANG=C\n"
        assert env.get_environment_variables(EnvironmentScope.MACHINE) == {"LANG": "C"}

    @pytest.mark.parametrize("name", ["#HASHED", "SPACED ", "export X"])
    def test_user_names_that_cannot_read_back_are_rejected(self, env, name):
        """Test user scope refuses names its file cannot return from get."""
        with pytest.raises(InvalidArgumentError):
            env.set_environment_variable(name, "v", EnvironmentScope.USER)

        assert env.get_environment_variables(EnvironmentScope.USER) == {}

    def test_persisted_name_limit(self, env):
        """Test machine scope enforces the 255 character name limit."""
        with pytest.raises(InvalidArgumentError):
            env.set_environment_variable("N" * 255, "x", EnvironmentScope.MACHINE)

    def test_invalid_scope(self, env):
        """Test an unknown scope is rejected."""
        with pytest.raises(InvalidArgumentError):
            env.get_environment_variables("session")


class TestHostFacts:
    """Tests for the read-only accessors."""

    def test_identity(self, env):
        """Test identity accessors return non-empty values."""
        assert env.get_machine_name()
        assert env.get_user_name()
        assert env.get_user_domain_name()
        assert isinstance(env.is_user_interactive(), bool)

    def test_os_version(self, env):
        """Test the OS version names a platform."""
        info = env.get_os_version()

        assert isinstance(info, OperatingSystemInfo)
        assert info.platform

    def test_bitness(self, env):
        """Test a 64-bit process implies a 64-bit OS."""
        assert env.is_64bit_process() == (sys.maxsize > 2**32)
        if env.is_64bit_process():
            assert env.is_64bit_operating_system()

    def test_processor_and_memory(self, env):
        """Test CPU, page size and working set readings."""
        assert env.get_processor_count() == psutil.cpu_count(logical=True)
        assert env.get_system_page_size() > 0
        assert env.get_working_set() > 0

    def test_tick_count_is_time_since_boot(self, env):
        """Test the tick count is positive and monotonic."""
        first = env.get_tick_count()
        second = env.get_tick_count()

        assert first > 0
        assert second >= first

    def test_process_and_thread(self, env):
        """Test process and thread ids match the running ones."""
        assert env.get_process_id() == os.getpid()
        assert env.get_current_thread_id() == threading.get_ident()

    def test_runtime(self, env):
        """Test newline, runtime version and shutdown flag."""
        assert env.get_new_line() == os.linesep
        assert env.get_runtime_version().startswith(f"{sys.version_info.major}.{sys.version_info.minor}")
        assert env.has_shutdown_started() is False

    def test_command_line(self, env):
        """Test argument 0 is the interpreter."""
        args = env.get_command_line_args()

        assert args[0] == sys.executable
        assert env.get_command_line()

    def test_stack_trace_mentions_caller(self, env):
        """Test the stack trace includes the calling test."""
        assert "test_stack_trace_mentions_caller" in env.get_stack_trace()

    def test_logical_drives(self, env):
        """Test drives are listed without duplicates."""
        drives = env.get_logical_drives()

        assert isinstance(drives, list)
        assert len(drives) == len(set(drives))

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX layout")
    def test_system_directory_is_empty_on_posix(self, env):
        """Test POSIX hosts have no system directory."""
        assert env.get_system_directory() == ""

    def test_snapshot_host(self, env):
        """Test snapshot_host reads the live process."""
        snapshot = env.snapshot_host()

        assert snapshot.process_id == os.getpid()
        assert snapshot.processor_count > 0


def test_folder_path_uses_resolver(tmp_path):
    """Test get_folder_path delegates to the injected resolver."""
    from envfacade.folders import SpecialFolderResolver

    env = SystemEnvironment(folder_resolver=SpecialFolderResolver(platform="linux", home=str(tmp_path), environ={}))

    assert env.get_folder_path(SpecialFolder.USER_PROFILE) == str(tmp_path)
    assert env.get_folder_path(SpecialFolder.FONTS) == ""
    assert env.get_folder_path(SpecialFolder.FONTS, SpecialFolderOption.CREATE) == os.path.join(tmp_path, ".fonts")


def test_exit_code_is_shared_by_instances(env):
    """Test the exit code is process-wide state."""
    original = env.get_exit_code()
    try:
        env.set_exit_code(9)
        assert SystemEnvironment().get_exit_code() == 9
    finally:
        env.set_exit_code(original)


def test_exit_code_must_be_int(env):
    """Test set_exit_code rejects non-integers."""
    with pytest.raises(InvalidArgumentError):
        env.set_exit_code(1.5)


@pytest.mark.parametrize("code", [2**31, -(2**31) - 1, 2**40])
def test_exit_code_must_fit_a_c_int(env, code):
    """Test out of range codes are rejected and leave the stored code alone."""
    before = env.get_exit_code()

    with pytest.raises(InvalidArgumentError):
        env.set_exit_code(code)

    assert env.get_exit_code() == before


class TestTermination:
    """Tests for exit and fail_fast, run in child processes."""

    def test_exit_terminates_with_code(self, tmp_path):
        """Test exit skips finally blocks and atexit handlers."""
        result = run_snippet(
            """
            import atexit
            from envfacade.system import SystemEnvironment

            atexit.register(print, "atexit ran")
            print("before", flush=True)
            try:
                SystemEnvironment().exit(7)
            finally:
                print("finally ran")
            print("after")
            """,
            tmp_path,
        )

        assert result.returncode == 7
        assert "before" in result.stdout
        assert "finally ran" not in result.stdout
        assert "after" not in result.stdout
        assert "atexit ran" not in result.stdout

    def test_exit_with_oversized_code_raises_before_shutdown(self, tmp_path):
        """Test a code outside the C int range raises without tearing down logging."""
        result = run_snippet(
            """
            import logging
            from envfacade.errors import InvalidArgumentError
            from envfacade.system import SystemEnvironment

            environment = SystemEnvironment()
            try:
                environment.exit(2**40)
            except InvalidArgumentError:
                print("rejected", environment.get_exit_code())
            logging.getLogger("after").warning("logging still works")
            environment.exit(3)
            """,
            tmp_path,
        )

        assert result.returncode == 3
        assert "rejected 0" in result.stdout
        assert "logging still works" in result.stderr

    def test_exit_flushes_buffered_stdout(self, tmp_path):
        """Test buffered stdout is written before exiting."""
        result = run_snippet(
            """
            import sys
            from envfacade.system import SystemEnvironment

            sys.stdout.write("buffered")
            SystemEnvironment().exit(0)
            """,
            tmp_path,
        )

        assert result.returncode == 0
        assert result.stdout == "buffered"

    @pytest.mark.skipif(sys.platform == "win32", reason="SIGABRT semantics")
    def test_fail_fast_aborts_with_report(self, tmp_path):
        """Test fail_fast aborts after reporting message and cause."""
        result = run_snippet(
            """
            from envfacade.system import SystemEnvironment

            try:
                raise ValueError("balance went negative")
            except ValueError as exc:
                SystemEnvironment().fail_fast("ledger corrupted", exc)
            print("after")
            """,
            tmp_path,
        )

        assert result.returncode < 0  # Killed by SIGABRT
        assert "after" not in result.stdout
        assert "Process terminated. ledger corrupted" in result.stderr
        assert "ValueError: balance went negative" in result.stderr
