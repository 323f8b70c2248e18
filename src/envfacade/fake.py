"""FakeEnvironment: an in-memory Environment for tests."""

import posixpath
import traceback
from collections.abc import Iterable, Mapping
from typing import NoReturn

from envfacade.environment import Environment, check_exit_code
from envfacade.errors import InvalidArgumentError, NotFoundError, PermissionDeniedError
from envfacade.folders import coerce_folder, coerce_option
from envfacade.models import EnvironmentScope, OperatingSystemInfo, SpecialFolder, SpecialFolderOption
from envfacade.variables import (
    check_lookup_name,
    coerce_scope,
    expand_variables,
    validate_variable_name,
    validate_variable_value,
)


class ProcessExitRequested(BaseException):
    """Raised by FakeEnvironment.exit in place of terminating the process."""

    def __init__(self, code: int) -> None:
        super().__init__(code)
        self.code = code


class FailFastRequested(BaseException):
    """Raised by FakeEnvironment.fail_fast in place of aborting the process."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause


class FakeEnvironment(Environment):
    """
    Environment whose state lives in plain attributes.

    Names and values go through the same validation as SystemEnvironment,
    so contract failures look the same. The filesystem is simulated by a
    set of POSIX-style directory paths: set_current_directory and
    get_folder_path only see directories in `directories`.

    exit() and fail_fast() record the call and raise ProcessExitRequested /
    FailFastRequested. Both derive from BaseException so an
    `except Exception` in the code under test does not hide them.
    """

    def __init__(
        self,
        *,
        current_directory: str = "/home/tester",
        directories: Iterable[str] = (),
        denied_directories: Iterable[str] = (),
        variables: Mapping[str, str] | None = None,
        user_variables: Mapping[str, str] | None = None,
        machine_variables: Mapping[str, str] | None = None,
        command_line_args: list[str] | None = None,
        folders: Mapping[SpecialFolder, str] | None = None,
        logical_drives: list[str] | None = None,
        machine_name: str = "fake-host",
        user_name: str = "tester",
        user_domain_name: str | None = None,
        user_interactive: bool = False,
        os_version: OperatingSystemInfo | None = None,
        is_64bit_os: bool = True,
        is_64bit_process: bool = True,
        processor_count: int = 4,
        page_size: int = 4096,
        working_set: int = 32 * 1024 * 1024,
        tick_count: int = 0,
        process_id: int = 4242,
        thread_id: int = 1,
        system_directory: str = "",
        new_line: str = "\n",
        runtime_version: str = "3.12.0",
    ) -> None:
        """
        Initialize the FakeEnvironment.

        Every argument seeds the attribute of the same name (is_64bit_process
        seeds `is_64bit`); tests may also edit the attributes between calls.

        Args:
            current_directory: Starting working directory.
            directories: Directories that exist. The current directory and
                "/" are always added.
            denied_directories: Directories that raise PermissionDeniedError
                on set_current_directory.
            variables: Process scope variables.
            user_variables: User scope variables.
            machine_variables: Machine scope variables.
            command_line_args: argv, interpreter first.
            folders: Path of each special folder; unmapped folders read as "".
            logical_drives: Mount points returned by get_logical_drives.
            machine_name: Host name.
            user_name: Login name.
            user_domain_name: Domain. Default machine_name.
            user_interactive: Whether a user is at the terminal.
            os_version: OS description. Default Linux 6.1.0 on x86_64.
            is_64bit_os: Whether the OS is 64-bit.
            is_64bit_process: Whether the process is 64-bit.
            processor_count: Logical CPU count.
            page_size: Memory page size in bytes.
            working_set: Resident memory in bytes.
            tick_count: Milliseconds since boot.
            process_id: PID.
            thread_id: Current thread id.
            system_directory: Returned by get_system_directory.
            new_line: Line terminator.
            runtime_version: Interpreter version string.
        """
        self.current_directory = _normalize(current_directory)
        self.directories: set[str] = {_normalize(d) for d in directories} | {self.current_directory, "/"}
        self.denied_directories: set[str] = {_normalize(d) for d in denied_directories}
        self.variables: dict[EnvironmentScope, dict[str, str]] = {
            EnvironmentScope.PROCESS: dict(variables or {}),
            EnvironmentScope.USER: dict(user_variables or {}),
            EnvironmentScope.MACHINE: dict(machine_variables or {}),
        }
        self.command_line_args = list(command_line_args or ["/usr/bin/python3", "app.py"])
        self.folders: dict[SpecialFolder, str] = dict(folders or {})
        self.logical_drives = list(logical_drives or ["/"])
        self.machine_name = machine_name
        self.user_name = user_name
        self.user_domain_name = user_domain_name or machine_name
        self.user_interactive = user_interactive
        self.os_version = os_version or OperatingSystemInfo(
            platform="Linux", release="6.1.0", version="#1 SMP", machine="x86_64"
        )
        self.is_64bit_os = is_64bit_os
        self.is_64bit = is_64bit_process
        self.processor_count = processor_count
        self.page_size = page_size
        self.working_set = working_set
        self.tick_count = tick_count
        self.process_id = process_id
        self.thread_id = thread_id
        self.system_directory = system_directory
        self.new_line = new_line
        self.runtime_version = runtime_version
        self.shutdown_started = False
        self.exit_code = 0
        self.exit_calls: list[int] = []
        self.fail_fast_calls: list[tuple[str, BaseException | None]] = []

    # Process identity

    def get_command_line(self) -> str:
        return " ".join(self.command_line_args)

    def get_command_line_args(self) -> list[str]:
        return list(self.command_line_args)

    def get_process_id(self) -> int:
        return self.process_id

    def get_current_thread_id(self) -> int:
        return self.thread_id

    def get_exit_code(self) -> int:
        return self.exit_code

    def set_exit_code(self, code: int) -> None:
        self.exit_code = check_exit_code(code)

    def get_stack_trace(self) -> str:
        return "".join(traceback.format_stack()[:-1])

    # Filesystem context

    def get_current_directory(self) -> str:
        return self.current_directory

    def set_current_directory(self, path: str) -> None:
        if path is None:
            raise InvalidArgumentError("Directory must not be None")
        if not path:
            raise InvalidArgumentError("Directory must not be empty")

        target = _normalize(posixpath.join(self.current_directory, path))
        if target in self.denied_directories:
            raise PermissionDeniedError(f"Permission denied: {path!r}")
        if target not in self.directories:
            raise NotFoundError(f"No such directory: {path!r}")
        self.current_directory = target

    def get_system_directory(self) -> str:
        return self.system_directory

    def get_folder_path(
        self,
        folder: SpecialFolder | int,
        option: SpecialFolderOption | int = SpecialFolderOption.NONE,
    ) -> str:
        folder = coerce_folder(folder)
        option = coerce_option(option)
        path = self.folders.get(folder, "")
        if not path or option is SpecialFolderOption.DO_NOT_VERIFY:
            return path
        if option is SpecialFolderOption.CREATE:
            self.directories.add(_normalize(path))
            return path
        return path if _normalize(path) in self.directories else ""

    def get_logical_drives(self) -> list[str]:
        return list(self.logical_drives)

    # Environment variables

    def get_environment_variable(
        self,
        name: str,
        scope: EnvironmentScope | str = EnvironmentScope.PROCESS,
    ) -> str | None:
        scope = coerce_scope(scope)
        check_lookup_name(name)
        return self.variables[scope].get(name)

    def set_environment_variable(
        self,
        name: str,
        value: str | None,
        scope: EnvironmentScope | str = EnvironmentScope.PROCESS,
    ) -> None:
        scope = coerce_scope(scope)
        validate_variable_name(name, scope)
        if value is None or value == "":
            self.variables[scope].pop(name, None)
            return
        self.variables[scope][name] = validate_variable_value(value, scope)

    def get_environment_variables(
        self,
        scope: EnvironmentScope | str = EnvironmentScope.PROCESS,
    ) -> dict[str, str]:
        return dict(self.variables[coerce_scope(scope)])

    def expand_environment_variables(self, text: str) -> str:
        return expand_variables(text, self.variables[EnvironmentScope.PROCESS].get)

    # Host identity

    def get_machine_name(self) -> str:
        return self.machine_name

    def get_user_name(self) -> str:
        return self.user_name

    def get_user_domain_name(self) -> str:
        return self.user_domain_name

    def is_user_interactive(self) -> bool:
        return self.user_interactive

    def get_os_version(self) -> OperatingSystemInfo:
        return self.os_version

    def is_64bit_operating_system(self) -> bool:
        return self.is_64bit_os

    def is_64bit_process(self) -> bool:
        return self.is_64bit

    def get_processor_count(self) -> int:
        return self.processor_count

    def get_system_page_size(self) -> int:
        return self.page_size

    def get_new_line(self) -> str:
        return self.new_line

    def get_runtime_version(self) -> str:
        return self.runtime_version

    # Runtime lifecycle

    def has_shutdown_started(self) -> bool:
        return self.shutdown_started

    def get_tick_count(self) -> int:
        return self.tick_count

    def get_working_set(self) -> int:
        return self.working_set

    def exit(self, code: int) -> NoReturn:
        self.exit_code = check_exit_code(code)
        self.exit_calls.append(code)
        raise ProcessExitRequested(code)

    def fail_fast(self, message: str, cause: BaseException | None = None) -> NoReturn:
        self.fail_fast_calls.append((message, cause))
        raise FailFastRequested(message, cause)


def _normalize(path: str) -> str:
    return posixpath.normpath(path) if path else path
