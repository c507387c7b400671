"""Filesystem type magic numbers as reported by statfs."""

from __future__ import annotations

REMOTE_MAGICS: tuple[tuple[int, str], ...] = (
    (0x73757245, "CODA"),
    (0xFF534D42, "CIFS"),
    (0x564C, "NCP"),
    (0x6969, "NFS"),
    (0x517B, "SMB"),
    (0xA501FCF5, "VXFS"),
)

LOCAL_MAGICS: tuple[tuple[int, str], ...] = (
    (0xADF5, "ADFS"),
    (0xADFF, "AFFS"),
    (0x42465331, "BEFS"),
    (0x1BADFACE, "BFS"),
    (0x012FF7B7, "COH"),
    (0x28CD3D45, "CRAMFS"),
    (0x1373, "DEVFS"),
    (0x00414A53, "EFS"),
    (0x137D, "EXT"),
    (0xEF51, "EXT2"),
    (0xEF53, "EXT2"),
    (0xEF53, "EXT3"),
    (0x4244, "HFS"),
    (0xF995E849, "HPFS"),
    (0x958458F6, "HUGETLBFS"),
    (0x9660, "ISOFS"),
    (0x72B6, "JFFS2"),
    (0x3153464A, "JFS"),
    (0x137F, "MINIX"),
    (0x138F, "MINIX"),
    (0x2468, "MINIX2"),
    (0x2478, "MINIX2"),
    (0x4D44, "MSDOS"),
    (0x5346544E, "NTFS_SB"),
    (0x9FA1, "OPENPROM"),
    (0x9FA0, "PROC"),
    (0x002F, "QNX4"),
    (0x52654973, "REISERFS"),
    (0x7275, "ROMFS"),
    (0x012FF7B6, "SYSV2"),
    (0x012FF7B5, "SYSV4"),
    (0x01021994, "TMPFS"),
    (0x15013346, "UDF"),
    (0x00011954, "UFS"),
    (0x9FA2, "USBDEVICE"),
    (0x012FF7B4, "XENIX"),
    (0x58465342, "XFS"),
    (0x012FD16D, "XIAFS"),
)


def _lookup(table: tuple[tuple[int, str], ...], magic: int) -> str | None:
    # statfs may hand back the magic as a signed 32-bit value
    wanted = magic & 0xFFFFFFFF
    return next((name for value, name in table if value == wanted), None)


def fs_name(magic: int) -> str | None:
    """Return the filesystem name for a magic number, or None if unknown."""
    return _lookup(REMOTE_MAGICS, magic) or _lookup(LOCAL_MAGICS, magic)


def is_remote_magic(magic: int) -> bool:
    """Whether the magic number belongs to a network filesystem."""
    return _lookup(REMOTE_MAGICS, magic) is not None


def is_local_magic(magic: int) -> bool:
    """Whether the magic number belongs to a known local filesystem."""
    return _lookup(LOCAL_MAGICS, magic) is not None