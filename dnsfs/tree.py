"""In-memory inode tree backing the filesystem."""

from __future__ import annotations

import errno
import logging
import time
from collections.abc import Mapping
from pathlib import PurePosixPath
from typing import Optional, Union

from dnsfs.inode import (
    DEFAULT_BLOCK_SIZE,
    DirectoryInode,
    FileAttr,
    FileInode,
    FileType,
    Inode,
    LinkInode,
    blocks_for,
)
from dnsfs.permissions import FileHandles

logger = logging.getLogger(__name__)

ROOT_INODE = 1
DEFAULT_UID = 1000
DEFAULT_GID = 1000


def _name_for(path: str) -> str:
    if path == "/":
        return path
    name = PurePosixPath(path).name
    if not name:
        raise ValueError(f"path {path!r} has no final component")
    return name


def _as_bytes(data: Union[str, bytes]) -> bytes:
    return data.encode() if isinstance(data, str) else bytes(data)


class TreeFilesystem:
    """A flat map of inode numbers to inodes, rooted at inode 1 ("/")."""

    def __init__(
        self, contents: Optional[Mapping[str, Union[str, bytes]]] = None, mountpoint: str = ""
    ) -> None:
        self.tree: dict[int, Inode] = {}
        self.cur_inode = 0
        self.block_size = DEFAULT_BLOCK_SIZE
        self.file_handles = FileHandles()
        self.mountpoint = mountpoint

        self.create_inode("/", FileType.DIRECTORY, 0o755, 0, DEFAULT_UID, DEFAULT_GID, 0, "")
        for path, data in sorted((contents or {}).items()):
            raw = _as_bytes(data)
            self.create_inode(
                path,
                FileType.REGULAR_FILE,
                0o644,
                len(raw),
                DEFAULT_UID,
                DEFAULT_GID,
                ROOT_INODE,
                raw,
            )
        logger.debug("initial tree: %r", self.tree)

    def _new_attrs(self, ino: int, kind: FileType, mode: int, size: int, uid: int, gid: int) -> FileAttr:
        now = time.time()
        return FileAttr(
            ino=ino,
            kind=kind,
            perm=mode,
            uid=uid,
            gid=gid,
            size=size,
            blocks=blocks_for(size, self.block_size),
            atime=now,
            mtime=now,
            ctime=now,
            crtime=now,
            nlink=1,
            blksize=self.block_size,
        )

    def _parent_directory(self, parent: int) -> DirectoryInode:
        parent_inode = self.get_inode(parent)
        if parent_inode is None:
            raise KeyError(f"parent inode {parent} does not exist")
        if not isinstance(parent_inode, DirectoryInode):
            raise NotADirectoryError(f"parent inode {parent} is not a directory")
        return parent_inode

    def create_inode(
        self,
        path: str,
        kind: FileType,
        mode: int,
        size: int,
        uid: int,
        gid: int,
        parent: int,
        data: Union[str, bytes],
    ) -> Inode:
        """Add a file or directory below ``parent`` and return it."""
        if kind not in (FileType.REGULAR_FILE, FileType.DIRECTORY):
            raise ValueError(f"cannot create an inode of kind {kind}")
        name = _name_for(path)
        ino = self.cur_inode + 1
        parent_inode = self._parent_directory(parent) if ino != ROOT_INODE else None

        self.cur_inode = ino
        attrs = self._new_attrs(ino, kind, mode, size, uid, gid)
        inode: Inode
        if kind is FileType.REGULAR_FILE:
            inode = FileInode(
                inode_num=ino,
                attrs=attrs,
                path=path,
                name=name,
                parent=parent,
                num_links=attrs.nlink,
                data=_as_bytes(data),
            )
        else:
            inode = DirectoryInode(
                inode_num=ino,
                attrs=attrs,
                path=path,
                name=name,
                parent=parent,
                num_links=attrs.nlink,
            )

        if parent_inode is not None:
            parent_inode.contents.append(ino)
        self.set_inode(ino, inode)
        return inode

    def create_symlink(
        self,
        path: str,
        mode: int,
        size: int,
        uid: int,
        gid: int,
        parent: int,
        target: int,
        target_path: str,
    ) -> LinkInode:
        """Add a symbolic link below ``parent``; a target of 0 lies outside the tree."""
        name = _name_for(path)
        ino = self.cur_inode + 1
        parent_inode = self._parent_directory(parent) if ino != ROOT_INODE else None

        self.cur_inode = ino
        attrs = self._new_attrs(ino, FileType.SYMLINK, mode, size, uid, gid)
        link = LinkInode(
            inode_num=ino,
            attrs=attrs,
            path=path,
            name=name,
            parent=parent,
            num_links=attrs.nlink,
            target=target,
            target_path=target_path,
        )

        if parent_inode is not None:
            parent_inode.contents.append(ino)

        target_inode = self.get_inode(target)
        if target_inode is not None:
            target_inode.attrs.nlink += 1

        self.set_inode(ino, link)
        return link

    def resolve_symlink(self, inode: Inode) -> Optional[Inode]:
        """Follow a chain of links to its last inode in the tree; None for non-links."""
        if not isinstance(inode, LinkInode):
            return None
        current: Inode = inode
        target = inode.target
        seen = {inode.inode_num}
        while target != 0:
            found = self.get_inode(target)
            if found is None:
                break
            if found.inode_num in seen:
                raise OSError(errno.ELOOP, f"symlink loop at inode {found.inode_num}")
            seen.add(found.inode_num)
            target = found.target if isinstance(found, LinkInode) else 0
            current = found
        return self.get_inode(current.inode_num)

    def remove_inode(self, ino: int) -> None:
        """Drop ``ino`` from the tree if present."""
        logger.info("remove_inode(ino=%d)", ino)
        self.tree.pop(ino, None)

    def set_inode(self, ino: int, inode: Inode) -> None:
        """Store ``inode`` under ``ino``, replacing any previous entry."""
        self.tree[ino] = inode

    def get_inode(self, ino: int) -> Optional[Inode]:
        """The inode numbered ``ino``, or None."""
        return self.tree.get(ino)

    def get_inode_by_path(self, path: str) -> Optional[Inode]:
        """The lowest-numbered inode whose path is ``path``, or None."""
        return next(
            (self.tree[ino] for ino in sorted(self.tree) if self.tree[ino].path == path),
            None,
        )

    def allocate_file_handle(self, ino: int, can_read: bool, can_write: bool) -> int:
        """Open a new handle on ``ino``."""
        return self.file_handles.allocate(ino, can_read, can_write)

    def release_file_handle(self, ino: int) -> None:
        """Close one handle on ``ino``."""
        self.file_handles.release(ino)