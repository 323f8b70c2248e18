"""Data models for envfacade."""

from dataclasses import dataclass
from enum import Enum


class EnvironmentScope(Enum):
    """Storage tier an environment variable lives in."""

    PROCESS = "process"
    USER = "user"
    MACHINE = "machine"


class SpecialFolder(Enum):
    """Platform-named folders, valued by their Windows CSIDL numbers."""

    DESKTOP = 0x0000
    PROGRAMS = 0x0002
    MY_DOCUMENTS = 0x0005
    PERSONAL = 0x0005
    FAVORITES = 0x0006
    STARTUP = 0x0007
    RECENT = 0x0008
    SEND_TO = 0x0009
    START_MENU = 0x000B
    MY_MUSIC = 0x000D
    MY_VIDEOS = 0x000E
    DESKTOP_DIRECTORY = 0x0010
    MY_COMPUTER = 0x0011
    NETWORK_SHORTCUTS = 0x0013
    FONTS = 0x0014
    TEMPLATES = 0x0015
    COMMON_START_MENU = 0x0016
    COMMON_PROGRAMS = 0x0017
    COMMON_STARTUP = 0x0018
    COMMON_DESKTOP_DIRECTORY = 0x0019
    APPLICATION_DATA = 0x001A
    PRINTER_SHORTCUTS = 0x001B
    LOCAL_APPLICATION_DATA = 0x001C
    INTERNET_CACHE = 0x0020
    COOKIES = 0x0021
    HISTORY = 0x0022
    COMMON_APPLICATION_DATA = 0x0023
    WINDOWS = 0x0024
    SYSTEM = 0x0025
    PROGRAM_FILES = 0x0026
    MY_PICTURES = 0x0027
    USER_PROFILE = 0x0028
    SYSTEM_X86 = 0x0029
    PROGRAM_FILES_X86 = 0x002A
    COMMON_PROGRAM_FILES = 0x002B
    COMMON_PROGRAM_FILES_X86 = 0x002C
    COMMON_TEMPLATES = 0x002D
    COMMON_DOCUMENTS = 0x002E
    COMMON_ADMIN_TOOLS = 0x002F
    ADMIN_TOOLS = 0x0030
    COMMON_MUSIC = 0x0035
    COMMON_PICTURES = 0x0036
    COMMON_VIDEOS = 0x0037
    RESOURCES = 0x0038
    LOCALIZED_RESOURCES = 0x0039
    COMMON_OEM_LINKS = 0x003A
    CD_BURNING = 0x003B


class SpecialFolderOption(Enum):
    """How get_folder_path treats a folder that may not exist yet."""

    NONE = 0x0000
    CREATE = 0x8000  # CSIDL_FLAG_CREATE
    DO_NOT_VERIFY = 0x4000  # CSIDL_FLAG_DONT_VERIFY


@dataclass(slots=True, frozen=True)
class OperatingSystemInfo:
    """Immutable description of the host operating system."""

    platform: str  # 'Linux', 'Windows', 'Darwin', ...
    release: str
    version: str
    machine: str  # 'x86_64', 'AMD64', 'arm64', ...

    @property
    def version_string(self) -> str:
        """Human-readable one-line description."""
        return f"{self.platform} {self.release} ({self.version}) {self.machine}".strip()


@dataclass(slots=True, frozen=True)
class HostSnapshot:
    """Immutable snapshot of host identity and runtime facts."""

    machine_name: str
    user_name: str
    user_domain_name: str
    os_version: OperatingSystemInfo
    processor_count: int
    page_size: int  # Bytes
    is_64bit_os: bool
    is_64bit_process: bool
    process_id: int
    working_set: int  # Bytes
    tick_count: int  # Milliseconds since boot
