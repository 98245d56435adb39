"""Inode records held in the in-memory filesystem tree."""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from typing import Optional, Union

DEFAULT_BLOCK_SIZE = 512


class FileType(enum.Enum):
    """Kind of object an inode describes."""

    REGULAR_FILE = "regular_file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"


def blocks_for(size: int, block_size: int) -> int:
    """Number of blocks of ``block_size`` bytes needed to hold ``size`` bytes."""
    if block_size <= 0:
        raise ValueError("block size must be positive")
    return (size + block_size - 1) // block_size


@dataclass(kw_only=True)
class FileAttr:
    """Attributes reported for an inode."""

    ino: int
    kind: FileType
    perm: int
    uid: int
    gid: int
    size: int = 0
    blocks: int = 0
    atime: float = field(default_factory=time.time)
    mtime: float = field(default_factory=time.time)
    ctime: float = field(default_factory=time.time)
    crtime: float = field(default_factory=time.time)
    nlink: int = 1
    rdev: int = 0
    flags: int = 0
    blksize: int = DEFAULT_BLOCK_SIZE


@dataclass(kw_only=True)
class _InodeBase:
    inode_num: int
    attrs: FileAttr
    path: str
    name: str
    parent: int
    num_links: int = 1


@dataclass(kw_only=True)
class FileInode(_InodeBase):
    """A regular file and its contents."""

    data: bytes = b""

    def write_data(self, data: bytes, offset: int) -> None:
        """Replace everything from ``offset`` onward with ``data``."""
        if offset < 0 or offset > len(self.data):
            raise ValueError(
                f"write offset {offset} is outside data of length {len(self.data)}"
            )
        self.data = bytes(self.data[:offset]) + bytes(data)


@dataclass(kw_only=True)
class DirectoryInode(_InodeBase):
    """A directory holding the inode numbers of its entries."""

    contents: list[int] = field(default_factory=list)


@dataclass(kw_only=True)
class LinkInode(_InodeBase):
    """A symbolic link; ``target`` is 0 when it points outside the tree."""

    target: int = 0
    target_path: str = ""

    def symlink_data(self) -> Optional[str]:
        """The stored link text, or None when there is none."""
        return self.target_path or None


Inode = Union[FileInode, DirectoryInode, LinkInode]