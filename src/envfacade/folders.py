"""Special folder resolution for Windows, Linux/BSD and macOS."""

import logging
import os
import sys
from collections.abc import Mapping
from pathlib import Path

from envfacade.errors import InvalidArgumentError, PlatformNotSupportedError, translate_os_error
from envfacade.models import SpecialFolder, SpecialFolderOption
from envfacade.stores import parse_assignment

logger = logging.getLogger(__name__)

POSIX_PLATFORMS = (
    "linux",
    "darwin",
    "freebsd",
    "openbsd",
    "netbsd",
    "dragonfly",
    "sunos",
    "aix",
    "cygwin",
    "haiku",
)

# folder -> (XDG user-dirs key, directory under $HOME when the key is unset)
_XDG_USER_DIRS = {
    SpecialFolder.DESKTOP: ("XDG_DESKTOP_DIR", "Desktop"),
    SpecialFolder.DESKTOP_DIRECTORY: ("XDG_DESKTOP_DIR", "Desktop"),
    SpecialFolder.MY_DOCUMENTS: ("XDG_DOCUMENTS_DIR", ""),
    SpecialFolder.TEMPLATES: ("XDG_TEMPLATES_DIR", "Templates"),
    SpecialFolder.MY_MUSIC: ("XDG_MUSIC_DIR", "Music"),
    SpecialFolder.MY_PICTURES: ("XDG_PICTURES_DIR", "Pictures"),
    SpecialFolder.MY_VIDEOS: ("XDG_VIDEOS_DIR", "Videos"),
}

_MACOS_HOME_DIRS = {
    SpecialFolder.DESKTOP: "Desktop",
    SpecialFolder.DESKTOP_DIRECTORY: "Desktop",
    SpecialFolder.MY_DOCUMENTS: "Documents",
    SpecialFolder.TEMPLATES: "Templates",
    SpecialFolder.MY_MUSIC: "Music",
    SpecialFolder.MY_PICTURES: "Pictures",
    SpecialFolder.MY_VIDEOS: "Movies",
    SpecialFolder.APPLICATION_DATA: ".config",
    SpecialFolder.LOCAL_APPLICATION_DATA: "Library/Application Support",
    SpecialFolder.FONTS: "Library/Fonts",
    SpecialFolder.FAVORITES: "Library/Favorites",
    SpecialFolder.INTERNET_CACHE: "Library/Caches",
}

_COMMON_POSIX_DIRS = {
    SpecialFolder.COMMON_APPLICATION_DATA: "/usr/share",
    SpecialFolder.COMMON_TEMPLATES: "/usr/share/templates",
}

_MACOS_SYSTEM_DIRS = {
    SpecialFolder.PROGRAM_FILES: "/Applications",
    SpecialFolder.SYSTEM: "/System",
}


def coerce_folder(folder: SpecialFolder | int) -> SpecialFolder:
    """Return folder as a SpecialFolder, accepting its CSIDL number too."""
    if isinstance(folder, SpecialFolder):
        return folder
    try:
        return SpecialFolder(folder)
    except ValueError:
        raise InvalidArgumentError(f"Unknown special folder: {folder!r}") from None


def coerce_option(option: SpecialFolderOption | int) -> SpecialFolderOption:
    """Return option as a SpecialFolderOption, accepting its flag value too."""
    if isinstance(option, SpecialFolderOption):
        return option
    try:
        return SpecialFolderOption(option)
    except ValueError:
        raise InvalidArgumentError(f"Unknown special folder option: {option!r}") from None


def apply_folder_option(path: str, option: SpecialFolderOption) -> str:
    """Verify or create path as option asks; '' means the folder is not there."""
    if not path or option is SpecialFolderOption.DO_NOT_VERIFY:
        return path
    if option is SpecialFolderOption.CREATE:
        try:
            os.makedirs(path, exist_ok=True)
        except OSError as exc:
            raise translate_os_error(exc, f"Cannot create {path}: {exc}") from exc
        return path
    return path if os.path.isdir(path) else ""


class SpecialFolderResolver:
    """
    Resolves SpecialFolder identifiers to paths.

    Windows asks the shell; POSIX hosts follow the XDG base directory and
    user-dirs conventions, with macOS using its ~/Library layout.
    """

    def __init__(
        self,
        platform: str | None = None,
        home: str | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        """
        Initialize the SpecialFolderResolver.

        Args:
            platform: sys.platform-style name. Defaults to the running one.
            home: Home directory. Defaults to $HOME, then the password database.
            environ: Variables consulted for XDG overrides. Defaults to os.environ.
        """
        self._platform = sys.platform if platform is None else platform
        self._home = home
        self._environ = os.environ if environ is None else environ

    @property
    def platform(self) -> str:
        """Get the platform this resolver answers for."""
        return self._platform

    @property
    def home(self) -> str:
        """Get the home directory used for per-user folders."""
        return self._home or self._environ.get("HOME") or os.path.expanduser("~")

    def get_folder_path(
        self,
        folder: SpecialFolder | int,
        option: SpecialFolderOption | int = SpecialFolderOption.NONE,
    ) -> str:
        """
        Return the path of folder, or '' if it does not exist.

        Raises:
            InvalidArgumentError: folder or option is not a known member.
            PlatformNotSupportedError: the platform has no folder layout.
        """
        folder = coerce_folder(folder)
        option = coerce_option(option)

        if self._platform == "win32":
            return self._windows_folder_path(folder, option)
        if not self._platform.startswith(POSIX_PLATFORMS):
            raise PlatformNotSupportedError(f"Special folders are not supported on {self._platform}")
        return apply_folder_option(self._posix_folder_path(folder), option)

    def _windows_folder_path(self, folder: SpecialFolder, option: SpecialFolderOption) -> str:
        import ctypes

        buffer = ctypes.create_unicode_buffer(260)  # MAX_PATH
        result = ctypes.windll.shell32.SHGetFolderPathW(None, folder.value | option.value, None, 0, buffer)
        if result != 0:
            # S_FALSE / E_FAIL: the folder does not exist or has no file system path
            return ""
        return buffer.value

    def _posix_folder_path(self, folder: SpecialFolder) -> str:
        if folder in _COMMON_POSIX_DIRS:
            return _COMMON_POSIX_DIRS[folder]

        is_macos = self._platform == "darwin"
        if is_macos and folder in _MACOS_SYSTEM_DIRS:
            return _MACOS_SYSTEM_DIRS[folder]

        home = self.home
        if not home:
            return ""
        if folder is SpecialFolder.USER_PROFILE:
            return home

        if is_macos:
            subdir = _MACOS_HOME_DIRS.get(folder)
            return os.path.join(home, subdir) if subdir else ""

        if folder is SpecialFolder.APPLICATION_DATA:
            return self._xdg_base_dir("XDG_CONFIG_HOME", ".config")
        if folder is SpecialFolder.LOCAL_APPLICATION_DATA:
            return self._xdg_base_dir("XDG_DATA_HOME", os.path.join(".local", "share"))
        if folder is SpecialFolder.FONTS:
            return os.path.join(home, ".fonts")
        if folder in _XDG_USER_DIRS:
            key, fallback = _XDG_USER_DIRS[folder]
            return self._xdg_user_dir(key, fallback)
        return ""

    def _xdg_base_dir(self, key: str, fallback: str) -> str:
        value = self._environ.get(key, "")
        # Relative values are invalid per the XDG base directory spec
        if value.startswith("/"):
            return value
        return os.path.join(self.home, fallback)

    def _xdg_user_dir(self, key: str, fallback: str) -> str:
        """Look key up in the environment, then in user-dirs.dirs."""
        home = self.home
        value = self._environ.get(key) or self._read_user_dirs_file().get(key, "")

        if value == "$HOME" or value == "$HOME/":
            return home
        if value.startswith("$HOME/"):
            return os.path.join(home, value[len("$HOME/") :])
        if value.startswith("/"):
            return value
        return os.path.join(home, fallback) if fallback else home

    def _read_user_dirs_file(self) -> dict[str, str]:
        path = Path(self._xdg_base_dir("XDG_CONFIG_HOME", ".config")) / "user-dirs.dirs"
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            logger.debug("No user-dirs file at %s: %s", path, exc)
            return {}

        entries: dict[str, str] = {}
        for line in text.splitlines():
            parsed = parse_assignment(line)
            if parsed is not None:
                entries[parsed[0]] = parsed[1]
        return entries
