import pytest

from dnsfs.permissions import (
    FILE_HANDLE_READ_BIT,
    FILE_HANDLE_WRITE_BIT,
    FileHandles,
    can_execute,
    can_read,
    can_write,
)

OWNER = 1000
GROUP = 1000
OTHER_UID = 2000
OTHER_GID = 2000


def test_owner_bit_grants_owner_only():
    assert can_read(0o400, OWNER, GROUP, OWNER, OTHER_GID) is True
    assert can_read(0o400, OWNER, GROUP, OTHER_UID, GROUP) is False
    assert can_read(0o400, OWNER, GROUP, OTHER_UID, OTHER_GID) is False

    assert can_write(0o200, OWNER, GROUP, OWNER, OTHER_GID) is True
    assert can_write(0o200, OWNER, GROUP, OTHER_UID, GROUP) is False
    assert can_write(0o200, OWNER, GROUP, OTHER_UID, OTHER_GID) is False

    assert can_execute(0o100, OWNER, GROUP, OWNER, OTHER_GID) is True
    assert can_execute(0o100, OWNER, GROUP, OTHER_UID, GROUP) is False
    assert can_execute(0o100, OWNER, GROUP, OTHER_UID, OTHER_GID) is False


def test_group_bit_grants_group_members():
    assert can_read(0o040, OWNER, GROUP, OTHER_UID, GROUP) is True
    assert can_read(0o040, OWNER, GROUP, OWNER, OTHER_GID) is False

    assert can_write(0o020, OWNER, GROUP, OTHER_UID, GROUP) is True
    assert can_write(0o020, OWNER, GROUP, OWNER, OTHER_GID) is False

    assert can_execute(0o010, OWNER, GROUP, OTHER_UID, GROUP) is True
    assert can_execute(0o010, OWNER, GROUP, OWNER, OTHER_GID) is False


def test_other_bit_grants_everyone():
    assert can_read(0o004, OWNER, GROUP, OTHER_UID, OTHER_GID) is True
    assert can_write(0o002, OWNER, GROUP, OTHER_UID, OTHER_GID) is True
    assert can_execute(0o001, OWNER, GROUP, OTHER_UID, OTHER_GID) is True


def test_root_always_allowed():
    assert can_read(0, OWNER, GROUP, 0, 0) is True
    assert can_read(0, OWNER, GROUP, 0, GROUP) is False

    assert can_write(0, OWNER, GROUP, 0, 0) is True
    assert can_write(0, OWNER, GROUP, 0, GROUP) is False

    assert can_execute(0, OWNER, GROUP, 0, 0) is True
    assert can_execute(0, OWNER, GROUP, 0, GROUP) is False


def test_no_bits_denies():
    assert can_read(0, OWNER, GROUP, OWNER, GROUP) is False
    assert can_write(0, OWNER, GROUP, OWNER, GROUP) is False
    assert can_execute(0, OWNER, GROUP, OWNER, GROUP) is False


def test_checks_are_independent():
    mode = 0o644
    assert can_read(mode, OWNER, GROUP, OTHER_UID, OTHER_GID) is True
    assert can_write(mode, OWNER, GROUP, OTHER_UID, OTHER_GID) is False
    assert can_write(mode, OWNER, GROUP, OWNER, GROUP) is True
    assert can_execute(mode, OWNER, GROUP, OWNER, GROUP) is False


def test_first_handle_is_one():
    handles = FileHandles()
    assert handles.allocate(5, False, False) == 1
    assert handles[5] == 1


def test_handle_carries_access_bits():
    handles = FileHandles()
    fh = handles.allocate(5, True, True)
    assert fh & FILE_HANDLE_READ_BIT
    assert fh & FILE_HANDLE_WRITE_BIT
    assert fh & ~(FILE_HANDLE_READ_BIT | FILE_HANDLE_WRITE_BIT) == handles[5]


def test_read_only_handle_has_no_write_bit():
    handles = FileHandles()
    fh = handles.allocate(5, True, False)
    assert fh & FILE_HANDLE_WRITE_BIT == 0
    assert fh == handles[5] | FILE_HANDLE_READ_BIT


def test_handles_count_per_inode():
    handles = FileHandles()
    first = handles.allocate(5, False, False)
    second = handles.allocate(5, False, False)
    other = handles.allocate(6, False, False)
    assert second == first + 1
    assert other == first


def test_release_decrements_and_allows_reuse():
    handles = FileHandles()
    handles.allocate(5, False, False)
    second = handles.allocate(5, False, False)
    handles.release(5)
    assert handles.allocate(5, False, False) == second


def test_release_stops_at_zero():
    handles = FileHandles()
    handles.allocate(5, False, False)
    handles.release(5)
    handles.release(5)
    assert handles[5] == 0
    assert 5 in handles


def test_release_unknown_inode_raises():
    handles = FileHandles()
    with pytest.raises(KeyError):
        handles.release(42)
    assert 42 not in handles