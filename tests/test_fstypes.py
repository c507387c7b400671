import pytest

from mpslave.fstypes import (
    LOCAL_MAGICS,
    REMOTE_MAGICS,
    fs_name,
    is_local_magic,
    is_remote_magic,
)


def test_nfs_is_remote():
    assert fs_name(0x6969) == "NFS"
    assert is_remote_magic(0x6969) is True
    assert is_local_magic(0x6969) is False


def test_xfs_is_local():
    assert fs_name(0x58465342) == "XFS"
    assert is_local_magic(0x58465342) is True
    assert is_remote_magic(0x58465342) is False


def test_shared_ext_magic_gives_first_name():
    assert fs_name(0xEF53) == "EXT2"


def test_signed_magic_is_normalised():
    assert fs_name(0xFF534D42 - 2**32) == "CIFS"
    assert is_remote_magic(0xFF534D42 - 2**32) is True


@pytest.mark.parametrize("magic", [0, 0x12345678, -1])
def test_unknown_magic(magic):
    assert fs_name(magic) is None
    assert is_remote_magic(magic) is False
    assert is_local_magic(magic) is False


def test_remote_and_local_are_disjoint():
    local = {value for value, _ in LOCAL_MAGICS}
    for value, name in REMOTE_MAGICS:
        assert value not in local
        assert fs_name(value) == name