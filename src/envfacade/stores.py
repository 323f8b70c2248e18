"""Storage backends for process, user and machine scoped environment variables."""

import logging
import os
import re
import shutil
import sys
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path

from envfacade.errors import InvalidArgumentError, translate_os_error
from envfacade.models import EnvironmentScope
from envfacade.variables import coerce_scope

logger = logging.getLogger(__name__)

DEFAULT_MACHINE_STORE_PATH = Path("/etc/environment")
USER_STORE_FILENAME = "90-envfacade.conf"

_SAFE_VALUE = re.compile(r"^[A-Za-z0-9_@%+=:,./~-]*$")
_ESCAPED_CHAR = re.compile(r"\\(.)")


class VariableStore(ABC):
    """A flat name -> value mapping for one environment scope."""

    @abstractmethod
    def get(self, name: str) -> str | None:
        """Return the value of name, or None if it is not set."""

    @abstractmethod
    def set(self, name: str, value: str) -> None:
        """Create or replace name."""

    @abstractmethod
    def delete(self, name: str) -> None:
        """Remove name; removing an unset name is not an error."""

    @abstractmethod
    def items(self) -> dict[str, str]:
        """Return every variable in the store."""


class ProcessVariableStore(VariableStore):
    """Variables of the running process, backed by os.environ."""

    def get(self, name: str) -> str | None:
        return os.environ.get(name)

    def set(self, name: str, value: str) -> None:
        try:
            os.environ[name] = value
        except ValueError as exc:
            raise InvalidArgumentError(f"Cannot set {name!r}: {exc}") from exc

    def delete(self, name: str) -> None:
        os.environ.pop(name, None)

    def items(self) -> dict[str, str]:
        return dict(os.environ)


def parse_assignment(line: str) -> tuple[str, str] | None:
    """Parse one KEY=VALUE line; comments, blanks and junk yield None."""
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return None
    if stripped.startswith("export "):
        stripped = stripped[len("export ") :].lstrip()

    name, sep, value = stripped.partition("=")
    name = name.strip()
    if not sep or not name:
        return None

    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        quote = value[0]
        value = value[1:-1]
        if quote == '"':
            value = _ESCAPED_CHAR.sub(r"\1", value)
    return name, value


def _format_line(name: str, value: str) -> str:
    if _SAFE_VALUE.match(value):
        return f"{name}={value}"
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'{name}="{escaped}"'


class FileVariableStore(VariableStore):
    """
    Variables persisted in a KEY=VALUE file.

    The format is the one read by pam_env for /etc/environment and by
    systemd for ~/.config/environment.d/*.conf. Lines the store does not
    own (comments, other variables) are preserved on write.
    """

    def __init__(self, path: Path | str) -> None:
        """
        Initialize the FileVariableStore.

        Args:
            path: File holding the variables. It need not exist yet.
        """
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        """Get the backing file path."""
        return self._path

    def get(self, name: str) -> str | None:
        return self.items().get(name)

    def items(self) -> dict[str, str]:
        variables: dict[str, str] = {}
        for line in self._read_lines():
            parsed = parse_assignment(line)
            if parsed is not None:
                variables[parsed[0]] = parsed[1]
        return variables

    def set(self, name: str, value: str) -> None:
        self._check_line(name, value)
        self._rewrite(name, value)

    def delete(self, name: str) -> None:
        self._check_line(name, "")
        self._rewrite(name, None)

    def _check_line(self, name: str, value: str) -> None:
        """Reject assignments that would not read back as exactly (name, value)."""
        line = _format_line(name, value)
        if len(line.splitlines()) != 1:
            raise InvalidArgumentError(f"Names and values stored in {self._path} must be a single line")
        if parse_assignment(line) != (name, value):
            raise InvalidArgumentError(f"{name!r} cannot be stored in {self._path} and read back unchanged")

    def _read_lines(self) -> list[str]:
        try:
            return self._path.read_text(encoding="utf-8").splitlines()
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise translate_os_error(exc, f"Cannot read {self._path}: {exc}") from exc

    def _rewrite(self, name: str, value: str | None) -> None:
        with self._lock:
            lines = self._read_lines()
            kept: list[str] = []
            found = False
            for line in lines:
                parsed = parse_assignment(line)
                if parsed is not None and parsed[0] == name:
                    # Collapse duplicates into the first occurrence
                    if value is not None and not found:
                        kept.append(_format_line(name, value))
                    found = True
                    continue
                kept.append(line)

            if not found:
                if value is None:
                    return
                kept.append(_format_line(name, value))

            self._write_lines(kept)
            logger.debug("%s %s in %s", "Set" if value is not None else "Deleted", name, self._path)

    def _write_lines(self, lines: list[str]) -> None:
        """Replace the file atomically so readers never see a partial write."""
        tmp_name = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self._path.parent,
                prefix=f".{self._path.name}.",
                delete=False,
            ) as tmp:
                tmp_name = tmp.name
                tmp.write("".join(f"{line}\n" for line in lines))
            if self._path.exists():
                shutil.copymode(self._path, tmp_name)
            os.replace(tmp_name, self._path)
        except OSError as exc:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise translate_os_error(exc, f"Cannot write {self._path}: {exc}") from exc


class RegistryVariableStore(VariableStore):
    """User or machine variables in the Windows registry."""

    _KEYS = {
        EnvironmentScope.USER: ("HKEY_CURRENT_USER", "Environment"),
        EnvironmentScope.MACHINE: (
            "HKEY_LOCAL_MACHINE",
            r"SYSTEM\CurrentControlSet\Control\Session Manager\Environment",
        ),
    }

    def __init__(self, scope: EnvironmentScope) -> None:
        import winreg

        if scope not in self._KEYS:
            raise InvalidArgumentError(f"No registry key for {scope.value} scope")
        root_name, self._subkey = self._KEYS[scope]
        self._winreg = winreg
        self._root = getattr(winreg, root_name)

    def get(self, name: str) -> str | None:
        try:
            with self._winreg.OpenKey(self._root, self._subkey) as key:
                value, _ = self._winreg.QueryValueEx(key, name)
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise translate_os_error(exc, f"Cannot read {name}: {exc}") from exc
        return str(value)

    def items(self) -> dict[str, str]:
        variables: dict[str, str] = {}
        try:
            with self._winreg.OpenKey(self._root, self._subkey) as key:
                index = 0
                while True:
                    try:
                        name, value, _ = self._winreg.EnumValue(key, index)
                    except OSError:
                        break  # ERROR_NO_MORE_ITEMS
                    variables[name] = str(value)
                    index += 1
        except FileNotFoundError:
            return {}
        except OSError as exc:
            raise translate_os_error(exc, f"Cannot enumerate {self._subkey}: {exc}") from exc
        return variables

    def set(self, name: str, value: str) -> None:
        value_type = self._winreg.REG_EXPAND_SZ if "%" in value else self._winreg.REG_SZ
        try:
            with self._winreg.OpenKey(self._root, self._subkey, 0, self._winreg.KEY_SET_VALUE) as key:
                self._winreg.SetValueEx(key, name, 0, value_type, value)
        except OSError as exc:
            raise translate_os_error(exc, f"Cannot set {name}: {exc}") from exc
        self._broadcast_change()

    def delete(self, name: str) -> None:
        try:
            with self._winreg.OpenKey(self._root, self._subkey, 0, self._winreg.KEY_SET_VALUE) as key:
                self._winreg.DeleteValue(key, name)
        except FileNotFoundError:
            return
        except OSError as exc:
            raise translate_os_error(exc, f"Cannot delete {name}: {exc}") from exc
        self._broadcast_change()

    def _broadcast_change(self) -> None:
        """Tell running applications (Explorer, shells) that the environment changed."""
        import ctypes

        HWND_BROADCAST = 0xFFFF
        WM_SETTINGCHANGE = 0x001A
        SMTO_ABORTIFHUNG = 0x0002
        result = ctypes.c_size_t()
        sent = ctypes.windll.user32.SendMessageTimeoutW(
            HWND_BROADCAST,
            WM_SETTINGCHANGE,
            0,
            "Environment",
            SMTO_ABORTIFHUNG,
            1000,
            ctypes.byref(result),
        )
        if not sent:
            logger.warning("WM_SETTINGCHANGE broadcast timed out")


def default_user_store_path(environ: dict[str, str] | None = None) -> Path:
    """Return $XDG_CONFIG_HOME/environment.d/90-envfacade.conf."""
    environ = os.environ if environ is None else environ
    config_home = environ.get("XDG_CONFIG_HOME") or os.path.join(os.path.expanduser("~"), ".config")
    return Path(config_home) / "environment.d" / USER_STORE_FILENAME


def default_store(
    scope: EnvironmentScope | str,
    *,
    user_store_path: Path | str | None = None,
    machine_store_path: Path | str | None = None,
) -> VariableStore:
    """Pick the store that backs scope on the running platform."""
    scope = coerce_scope(scope)
    if scope is EnvironmentScope.PROCESS:
        return ProcessVariableStore()
    if sys.platform == "win32":
        return RegistryVariableStore(scope)
    if scope is EnvironmentScope.USER:
        return FileVariableStore(user_store_path or default_user_store_path())
    return FileVariableStore(machine_store_path or DEFAULT_MACHINE_STORE_PATH)
