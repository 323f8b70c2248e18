"""Tests for envfacade data models."""

import pytest

from envfacade.models import (
    EnvironmentScope,
    HostSnapshot,
    OperatingSystemInfo,
    SpecialFolder,
    SpecialFolderOption,
)


def make_host(**overrides) -> HostSnapshot:
    values = dict(
        machine_name="build-01",
        user_name="ci",
        user_domain_name="build-01",
        os_version=OperatingSystemInfo(platform="Linux", release="6.1.0", version="#1 SMP", machine="x86_64"),
        processor_count=8,
        page_size=4096,
        is_64bit_os=True,
        is_64bit_process=True,
        process_id=123,
        working_set=50 * 1024 * 1024,
        tick_count=3_600_000,
    )
    values.update(overrides)
    return HostSnapshot(**values)


def test_operating_system_info_version_string():
    """Test version_string joins the platform fields."""
    info = OperatingSystemInfo(platform="Linux", release="6.1.0", version="#1 SMP", machine="x86_64")
    assert info.version_string == "Linux 6.1.0 (#1 SMP) x86_64"


def test_operating_system_info_is_frozen():
    """Test that OperatingSystemInfo is immutable (frozen)."""
    info = OperatingSystemInfo(platform="Windows", release="10", version="10.0.19045", machine="AMD64")

    with pytest.raises(AttributeError):
        info.platform = "Linux"


def test_host_snapshot_creation():
    """Test HostSnapshot dataclass creation."""
    snapshot = make_host()

    assert snapshot.machine_name == "build-01"
    assert snapshot.processor_count == 8
    assert snapshot.os_version.platform == "Linux"
    assert snapshot.tick_count == 3_600_000


def test_host_snapshot_uses_slots():
    """Test that HostSnapshot uses __slots__."""
    assert not hasattr(make_host(), "__dict__")


def test_host_snapshot_equality():
    """Test snapshots with the same facts compare equal."""
    assert make_host() == make_host()
    assert make_host() != make_host(working_set=1)


class TestEnums:
    """Tests for the scope and folder enums."""

    def test_scope_values(self):
        """Test scope values are their lowercase names."""
        assert [scope.value for scope in EnvironmentScope] == ["process", "user", "machine"]

    def test_personal_is_my_documents(self):
        """Test PERSONAL is an alias of MY_DOCUMENTS."""
        assert SpecialFolder.PERSONAL is SpecialFolder.MY_DOCUMENTS

    def test_folder_values_are_csidl_numbers(self):
        """Test folder values are CSIDL numbers."""
        assert SpecialFolder.DESKTOP.value == 0
        assert SpecialFolder.APPLICATION_DATA.value == 0x1A
        assert SpecialFolder.USER_PROFILE.value == 0x28
        assert SpecialFolder(0x23) is SpecialFolder.COMMON_APPLICATION_DATA

    def test_folder_option_values(self):
        """Test option values match the Windows flags."""
        assert SpecialFolderOption.NONE.value == 0
        assert SpecialFolderOption.CREATE.value == 0x8000
        assert SpecialFolderOption.DO_NOT_VERIFY.value == 0x4000
