"""SystemEnvironment: the Environment backed by the running process and host."""

import getpass
import logging
import mmap
import os
import platform
import shlex
import socket
import subprocess
import sys
import threading
import time
import traceback
from pathlib import Path
from typing import NoReturn

import psutil

from envfacade.environment import Environment, check_exit_code
from envfacade.errors import (
    InvalidArgumentError,
    NotSupportedError,
    PermissionDeniedError,
    PlatformError,
    PlatformIOError,
    translate_os_error,
)
from envfacade.folders import SpecialFolderResolver
from envfacade.models import EnvironmentScope, OperatingSystemInfo, SpecialFolder, SpecialFolderOption
from envfacade.stores import VariableStore, default_store
from envfacade.variables import (
    check_lookup_name,
    coerce_scope,
    expand_variables,
    validate_variable_name,
    validate_variable_value,
)

logger = logging.getLogger(__name__)

_64BIT_MACHINES = frozenset(
    {
        "x86_64",
        "amd64",
        "arm64",
        "aarch64",
        "aarch64_be",
        "ia64",
        "ppc64",
        "ppc64le",
        "riscv64",
        "s390x",
        "sparc64",
        "mips64",
        "loongarch64",
    }
)

# Shared by every SystemEnvironment: the process has one exit code.
_exit_code = 0


class SystemEnvironment(Environment):
    """
    Environment that forwards every call to the operating system.

    Host facts come from psutil, platform and socket; user and machine
    scoped variables go through the store chosen by stores.default_store
    (the registry on Windows, KEY=VALUE files elsewhere).
    """

    def __init__(
        self,
        *,
        user_store_path: Path | str | None = None,
        machine_store_path: Path | str | None = None,
        folder_resolver: SpecialFolderResolver | None = None,
    ) -> None:
        """
        Initialize the SystemEnvironment.

        Args:
            user_store_path: File for user scoped variables on POSIX hosts.
                Default $XDG_CONFIG_HOME/environment.d/90-envfacade.conf.
            machine_store_path: File for machine scoped variables on POSIX
                hosts. Default /etc/environment.
            folder_resolver: Resolver for get_folder_path. Default resolves
                for the running platform.
        """
        self._user_store_path = user_store_path
        self._machine_store_path = machine_store_path
        self._folders = folder_resolver or SpecialFolderResolver()
        self._stores: dict[EnvironmentScope, VariableStore] = {}
        self._process = psutil.Process()

    def _store(self, scope: EnvironmentScope) -> VariableStore:
        store = self._stores.get(scope)
        if store is None:
            store = default_store(
                scope,
                user_store_path=self._user_store_path,
                machine_store_path=self._machine_store_path,
            )
            self._stores[scope] = store
        return store

    # Process identity

    def get_command_line(self) -> str:
        args = self.get_command_line_args()
        if sys.platform == "win32":
            return subprocess.list2cmdline(args)
        return shlex.join(args)

    def get_command_line_args(self) -> list[str]:
        argv = list(sys.orig_argv)
        if not argv:
            raise NotSupportedError("This interpreter was started without a command line")
        if sys.executable:
            argv[0] = sys.executable
        return argv

    def get_process_id(self) -> int:
        return os.getpid()

    def get_current_thread_id(self) -> int:
        return threading.get_ident()

    def get_exit_code(self) -> int:
        return _exit_code

    def set_exit_code(self, code: int) -> None:
        global _exit_code
        _exit_code = check_exit_code(code)

    def get_stack_trace(self) -> str:
        # Drop this frame so the trace ends at the caller
        return "".join(traceback.format_stack()[:-1])

    # Filesystem context

    def get_current_directory(self) -> str:
        try:
            return os.getcwd()
        except OSError as exc:
            raise translate_os_error(exc, f"Cannot read the working directory: {exc}") from exc

    def set_current_directory(self, path: str) -> None:
        if path is None:
            raise InvalidArgumentError("Directory must not be None")
        path = os.fspath(path)
        if not path:
            raise InvalidArgumentError("Directory must not be empty")

        try:
            os.chdir(path)
        except ValueError as exc:
            raise InvalidArgumentError(f"Invalid directory {path!r}: {exc}") from exc
        except OSError as exc:
            raise translate_os_error(exc, f"Cannot change directory to {path!r}: {exc}") from exc
        logger.debug("Working directory is now %s", path)

    def get_system_directory(self) -> str:
        if sys.platform == "win32":
            return os.path.join(os.environ.get("SystemRoot", r"C:\Windows"), "System32")
        return ""

    def get_folder_path(
        self,
        folder: SpecialFolder | int,
        option: SpecialFolderOption | int = SpecialFolderOption.NONE,
    ) -> str:
        return self._folders.get_folder_path(folder, option)

    def get_logical_drives(self) -> list[str]:
        try:
            partitions = psutil.disk_partitions(all=False)
        except (PermissionError, psutil.AccessDenied) as exc:
            raise PermissionDeniedError(f"Cannot list mounted volumes: {exc}") from exc
        except OSError as exc:
            raise PlatformIOError(f"Cannot list mounted volumes: {exc}") from exc

        drives: list[str] = []
        for partition in partitions:
            if partition.mountpoint not in drives:
                drives.append(partition.mountpoint)
        return drives

    # Environment variables

    def get_environment_variable(
        self,
        name: str,
        scope: EnvironmentScope | str = EnvironmentScope.PROCESS,
    ) -> str | None:
        scope = coerce_scope(scope)
        check_lookup_name(name)
        return self._store(scope).get(name)

    def set_environment_variable(
        self,
        name: str,
        value: str | None,
        scope: EnvironmentScope | str = EnvironmentScope.PROCESS,
    ) -> None:
        scope = coerce_scope(scope)
        validate_variable_name(name, scope)
        store = self._store(scope)

        if value is None or value == "":
            store.delete(name)
            logger.debug("Deleted %s (%s scope)", name, scope.value)
            return

        validate_variable_value(value, scope)
        store.set(name, value)
        logger.debug("Set %s (%s scope)", name, scope.value)

    def get_environment_variables(
        self,
        scope: EnvironmentScope | str = EnvironmentScope.PROCESS,
    ) -> dict[str, str]:
        return self._store(coerce_scope(scope)).items()

    def expand_environment_variables(self, text: str) -> str:
        return expand_variables(text, os.environ.get)

    # Host identity

    def get_machine_name(self) -> str:
        try:
            name = socket.gethostname()
        except OSError as exc:
            raise PlatformError(f"The machine name cannot be obtained: {exc}") from exc
        if not name:
            raise PlatformError("The machine name cannot be obtained")
        return name

    def get_user_name(self) -> str:
        try:
            return getpass.getuser()
        except (OSError, KeyError) as exc:
            raise PlatformError(f"The user name cannot be obtained: {exc}") from exc

    def get_user_domain_name(self) -> str:
        if sys.platform == "win32":
            domain = os.environ.get("USERDOMAIN")
            if domain:
                return domain
        return self.get_machine_name()

    def is_user_interactive(self) -> bool:
        stdin = sys.stdin
        if stdin is None:
            return False
        try:
            return stdin.isatty()
        except ValueError:
            return False  # Closed

    def get_os_version(self) -> OperatingSystemInfo:
        uname = platform.uname()
        if not uname.system:
            raise PlatformError("The operating system could not be identified")
        return OperatingSystemInfo(
            platform=uname.system,
            release=uname.release,
            version=uname.version,
            machine=uname.machine,
        )

    def is_64bit_operating_system(self) -> bool:
        if self.is_64bit_process():
            return True
        machine = platform.machine().lower()
        if sys.platform == "win32":
            # A 32-bit interpreter under WOW64 reports x86 here
            machine = os.environ.get("PROCESSOR_ARCHITEW6432", machine).lower()
        return machine in _64BIT_MACHINES

    def is_64bit_process(self) -> bool:
        return sys.maxsize > 2**32

    def get_processor_count(self) -> int:
        count = psutil.cpu_count(logical=True)
        if not count:
            raise PlatformError("The processor count cannot be determined")
        return count

    def get_system_page_size(self) -> int:
        return mmap.PAGESIZE

    def get_new_line(self) -> str:
        return os.linesep

    def get_runtime_version(self) -> str:
        return platform.python_version()

    # Runtime lifecycle

    def has_shutdown_started(self) -> bool:
        return sys.is_finalizing()

    def get_tick_count(self) -> int:
        return int((time.time() - psutil.boot_time()) * 1000)

    def get_working_set(self) -> int:
        try:
            return self._process.memory_info().rss
        except psutil.AccessDenied as exc:
            raise PermissionDeniedError(f"Cannot read the working set: {exc}") from exc
        except psutil.Error as exc:
            raise PlatformError(f"Cannot read the working set: {exc}") from exc

    def exit(self, code: int) -> NoReturn:
        """
        Terminate the process with code.

        Log records and stdio buffers are flushed first; finally blocks,
        atexit handlers and other threads do not get to run.
        """
        self.set_exit_code(code)
        logger.info("Exiting with code %d", code)
        logging.shutdown()
        _flush_stdio()
        os._exit(code)

    def fail_fast(self, message: str, cause: BaseException | None = None) -> NoReturn:
        """
        Abort the process after writing message to the original stderr.

        Nothing is flushed or unwound besides that report, and the exit
        status is the platform's abort status (SIGABRT on POSIX).
        """
        logger.critical("Process terminated. %s", message, exc_info=cause)
        report = f"Process terminated. {message}\n"
        if cause is not None:
            report += "".join(traceback.format_exception(cause))

        stream = sys.__stderr__
        if stream is not None:
            try:
                stream.write(report)
                stream.flush()
            except (OSError, ValueError):
                pass  # stderr is closed; abort regardless
        os.abort()


def _flush_stdio() -> None:
    for stream in (sys.stdout, sys.stderr):
        if stream is None:
            continue
        try:
            stream.flush()
        except (OSError, ValueError):
            pass  # Closed or broken pipe
