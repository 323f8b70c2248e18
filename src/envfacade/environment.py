"""The Environment capability set."""

from abc import ABC, abstractmethod
from typing import NoReturn

from envfacade.errors import InvalidArgumentError
from envfacade.models import (
    EnvironmentScope,
    HostSnapshot,
    OperatingSystemInfo,
    SpecialFolder,
    SpecialFolderOption,
)

# Range of the C int handed to the OS on exit
EXIT_CODE_MIN = -(2**31)
EXIT_CODE_MAX = 2**31 - 1


class Environment(ABC):
    """
    Injectable view of process- and host-scoped state.

    Application code takes an Environment instead of calling os, sys and
    platform directly, so tests can hand it a FakeEnvironment. The state
    itself lives in the operating system: environment variables and the
    current directory are shared by every thread and carry no locking.

    Failures are raised as EnvironmentFacadeError subclasses (see
    envfacade.errors); nothing is retried or defaulted.
    """

    # Process identity

    @abstractmethod
    def get_command_line(self) -> str:
        """Return the command line of this process as a single string."""

    @abstractmethod
    def get_command_line_args(self) -> list[str]:
        """
        Return the argument vector; element 0 is the executable path.

        Raises:
            NotSupportedError: the platform has no command line.
        """

    @abstractmethod
    def get_process_id(self) -> int:
        """Return the id of this process."""

    @abstractmethod
    def get_current_thread_id(self) -> int:
        """Return an identifier of the calling thread."""

    @abstractmethod
    def get_exit_code(self) -> int:
        """Return the exit code the process will report. Default 0."""

    @abstractmethod
    def set_exit_code(self, code: int) -> None:
        """Set the exit code the process will report."""

    @abstractmethod
    def get_stack_trace(self) -> str:
        """Return the formatted stack of the calling thread."""

    # Filesystem context

    @abstractmethod
    def get_current_directory(self) -> str:
        """Return the absolute path of the working directory."""

    @abstractmethod
    def set_current_directory(self, path: str) -> None:
        """
        Change the working directory.

        Raises:
            InvalidArgumentError: path is None or empty.
            NotFoundError: path does not exist.
            PermissionDeniedError: the caller may not enter path.
        """

    @abstractmethod
    def get_system_directory(self) -> str:
        """Return the system directory, or '' where the platform has none."""

    @abstractmethod
    def get_folder_path(
        self,
        folder: SpecialFolder | int,
        option: SpecialFolderOption | int = SpecialFolderOption.NONE,
    ) -> str:
        """
        Return the path of a special folder, or '' if it does not exist.

        Raises:
            InvalidArgumentError: folder or option is not a known member.
            PlatformNotSupportedError: the platform has no folder layout.
        """

    @abstractmethod
    def get_logical_drives(self) -> list[str]:
        """
        Return the roots of the mounted volumes.

        Raises:
            PlatformIOError: the mount table could not be read.
            PermissionDeniedError: the caller may not read it.
        """

    # Environment variables

    @abstractmethod
    def get_environment_variable(
        self,
        name: str,
        scope: EnvironmentScope | str = EnvironmentScope.PROCESS,
    ) -> str | None:
        """
        Return the value of name in scope, or None if it is unset.

        Raises:
            InvalidArgumentError: name is None/empty or scope is unknown.
        """

    @abstractmethod
    def set_environment_variable(
        self,
        name: str,
        value: str | None,
        scope: EnvironmentScope | str = EnvironmentScope.PROCESS,
    ) -> None:
        """
        Create, replace or (value None or '') delete name in scope.

        Raises:
            InvalidArgumentError: name or value breaks the scope's limits, or
                scope is unknown.
        """

    @abstractmethod
    def get_environment_variables(
        self,
        scope: EnvironmentScope | str = EnvironmentScope.PROCESS,
    ) -> dict[str, str]:
        """Return every variable in scope; empty when there are none."""

    @abstractmethod
    def expand_environment_variables(self, text: str) -> str:
        """Substitute %NAME% tokens with process variables, leaving unknown ones."""

    # Host identity

    @abstractmethod
    def get_machine_name(self) -> str:
        """Return the name of this computer."""

    @abstractmethod
    def get_user_name(self) -> str:
        """Return the name of the user running this process."""

    @abstractmethod
    def get_user_domain_name(self) -> str:
        """Return the network domain of the user."""

    @abstractmethod
    def is_user_interactive(self) -> bool:
        """Return True if the process is attached to an interactive session."""

    @abstractmethod
    def get_os_version(self) -> OperatingSystemInfo:
        """Return the platform identifier and version."""

    @abstractmethod
    def is_64bit_operating_system(self) -> bool:
        """Return True if the operating system is 64-bit."""

    @abstractmethod
    def is_64bit_process(self) -> bool:
        """Return True if this process is 64-bit."""

    @abstractmethod
    def get_processor_count(self) -> int:
        """Return the number of logical processors."""

    @abstractmethod
    def get_system_page_size(self) -> int:
        """Return the size of a memory page in bytes."""

    @abstractmethod
    def get_new_line(self) -> str:
        """Return the platform line separator."""

    @abstractmethod
    def get_runtime_version(self) -> str:
        """Return the version of the running interpreter."""

    # Runtime lifecycle

    @abstractmethod
    def has_shutdown_started(self) -> bool:
        """Return True once the interpreter is finalizing."""

    @abstractmethod
    def get_tick_count(self) -> int:
        """Return milliseconds elapsed since the system started."""

    @abstractmethod
    def get_working_set(self) -> int:
        """Return the physical memory mapped to this process, in bytes."""

    @abstractmethod
    def exit(self, code: int) -> NoReturn:
        """Terminate the process with code. Does not return."""

    @abstractmethod
    def fail_fast(self, message: str, cause: BaseException | None = None) -> NoReturn:
        """Record message (and cause) and terminate without cleanup. Does not return."""

    def snapshot_host(self) -> HostSnapshot:
        """Collect the read-only host facts in one value."""
        return HostSnapshot(
            machine_name=self.get_machine_name(),
            user_name=self.get_user_name(),
            user_domain_name=self.get_user_domain_name(),
            os_version=self.get_os_version(),
            processor_count=self.get_processor_count(),
            page_size=self.get_system_page_size(),
            is_64bit_os=self.is_64bit_operating_system(),
            is_64bit_process=self.is_64bit_process(),
            process_id=self.get_process_id(),
            working_set=self.get_working_set(),
            tick_count=self.get_tick_count(),
        )


def check_exit_code(code: int) -> int:
    """Exit codes must be plain integers that fit a C int."""
    if isinstance(code, bool) or not isinstance(code, int):
        raise InvalidArgumentError(f"Exit code must be an integer, got {code!r}")
    if not EXIT_CODE_MIN <= code <= EXIT_CODE_MAX:
        raise InvalidArgumentError(f"Exit code {code} is outside {EXIT_CODE_MIN}..{EXIT_CODE_MAX}")
    return code
