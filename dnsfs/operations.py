"""Filesystem requests served from an in-memory inode tree."""

from __future__ import annotations

import errno
import logging
import os
import time
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Optional, Union

from dnsfs.inode import DirectoryInode, FileAttr, FileInode, FileType, Inode, LinkInode, blocks_for
from dnsfs.permissions import FILE_HANDLE_WRITE_BIT, can_read, can_write
from dnsfs.tree import TreeFilesystem

logger = logging.getLogger(__name__)

O_RDONLY = 0
O_WRONLY = 1
O_RDWR = 2
O_ACCMODE = 3
O_TRUNC = 0o1000
FMODE_EXEC = 0x20
S_ISGID = 0o2000

NOW = "now"
"""Pass as ``atime`` or ``mtime`` to ``setattr`` to use the current time."""

DEFAULT_CONTENTS = {"/foo": "bar", "/answer": "42"}

TimeOrNow = Union[float, str, None]


@dataclass(frozen=True)
class Request:
    """Credentials of the process making a request."""

    uid: int
    gid: int
    pid: int = 0


@dataclass(frozen=True)
class DirEntry:
    """One entry of a directory listing."""

    ino: int
    offset: int
    kind: FileType
    name: str


@dataclass(frozen=True)
class CreatedFile:
    """Result of creating and opening a new file."""

    attrs: FileAttr
    fh: int
    generation: int = 0
    flags: int = 0


def _error(code: int, detail: str) -> OSError:
    return OSError(code, f"{os.strerror(code)}: {detail}")


def _join(base: str, name: Union[str, os.PathLike]) -> str:
    return str(PurePosixPath(base) / os.fspath(name))


def _readable(inode: Inode, req: Request) -> bool:
    a = inode.attrs
    return can_read(a.perm, a.uid, a.gid, req.uid, req.gid)


def _writable(inode: Inode, req: Request) -> bool:
    a = inode.attrs
    return can_write(a.perm, a.uid, a.gid, req.uid, req.gid)


def _as_directory(inode: Inode) -> DirectoryInode:
    if not isinstance(inode, DirectoryInode):
        raise _error(errno.ENOTDIR, f"inode {inode.inode_num}")
    return inode


def _touch(*inodes: Inode) -> None:
    now = time.time()
    for inode in inodes:
        inode.attrs.mtime = now
        inode.attrs.atime = now


def _access_mode(flags: int) -> tuple[bool, bool]:
    acc = flags & O_ACCMODE
    if acc == O_RDONLY:
        return True, False
    if acc == O_WRONLY:
        return False, True
    if acc == O_RDWR:
        return True, True
    raise _error(errno.EINVAL, f"access mode {acc}")


class FilesystemOperations:
    """Answers filesystem requests against a ``TreeFilesystem``.

    Failures are raised as ``OSError`` carrying the errno the caller should see.
    """

    def __init__(self, fs: TreeFilesystem) -> None:
        self.fs = fs

    def getattr(self, req: Request, ino: int) -> FileAttr:
        """Attributes of inode ``ino``."""
        logger.info("getattr(ino=%d)", ino)
        inode = self.fs.get_inode(ino)
        if inode is None:
            raise _error(errno.ENOENT, f"inode {ino}")
        return inode.attrs

    def readdir(self, req: Request, ino: int, fh: int, offset: int) -> list[DirEntry]:
        """Entries of directory ``ino``; everything is returned at offset 0."""
        logger.info("readdir(ino=%d, fh=%d, offset=%d)", ino, fh, offset)
        inode = self.fs.get_inode(ino)
        if inode is None:
            raise _error(errno.ENOENT, f"inode {ino}")
        directory = _as_directory(inode)
        if offset != 0:
            return []
        entries = [
            DirEntry(directory.inode_num, 0, FileType.DIRECTORY, "."),
            DirEntry(directory.inode_num, 1, FileType.DIRECTORY, ".."),
        ]
        children = (self.fs.get_inode(child) for child in directory.contents)
        for idx, child in enumerate(c for c in children if c is not None):
            entries.append(DirEntry(child.inode_num, idx + 2, child.attrs.kind, child.name))
        return entries

    def lookup(self, req: Request, parent: int, name: str) -> FileAttr:
        """Attributes of the entry called ``name`` in directory ``parent``."""
        logger.info("lookup(parent=%d, name=%s)", parent, name)
        parent_inode = self.fs.get_inode(parent)
        if parent_inode is None:
            raise _error(errno.ENOENT, f"inode {parent}")
        for child_ino in _as_directory(parent_inode).contents:
            child = self.fs.get_inode(child_ino)
            if child is not None and child.name == name:
                return child.attrs
        raise _error(errno.ENOENT, name)

    def read(self, req: Request, ino: int, fh: int, offset: int, size: int, flags: int) -> bytes:
        """Up to ``size`` bytes of file ``ino`` from ``offset``, following links."""
        logger.info("read(ino=%d, fh=%d, offset=%d, size=%d, flags=%d)", ino, fh, offset, size, flags)
        inode = self.fs.get_inode(ino)
        if inode is None:
            raise _error(errno.EPERM, f"inode {ino}")
        if isinstance(inode, LinkInode):
            inode = self.fs.resolve_symlink(inode) or inode
        if not _readable(inode, req):
            raise _error(errno.EACCES, f"inode {ino}")
        if isinstance(inode, DirectoryInode):
            raise _error(errno.EISDIR, f"inode {inode.inode_num}")
        if not isinstance(inode, FileInode):
            raise _error(errno.EINVAL, f"inode {inode.inode_num} has no data")
        return inode.data[offset:offset + size]

    def open(self, req: Request, ino: int, flags: int) -> int:
        """Open ``ino`` and return a file handle carrying its access bits."""
        logger.info("open(ino=%d, flags=%d)", ino, flags)
        readable, writable = _access_mode(flags)
        if flags & O_ACCMODE == O_RDONLY and flags & O_TRUNC:
            raise _error(errno.EACCES, "read-only open with truncation")
        inode = self.fs.get_inode(ino)
        if inode is None:
            raise _error(errno.ENOSYS, f"inode {ino}")
        if (readable and not _readable(inode, req)) or (writable and not _writable(inode, req)):
            raise _error(errno.EACCES, f"inode {ino}")
        return self.fs.allocate_file_handle(ino, readable, writable)

    def write(self, req: Request, ino: int, fh: int, offset: int, data: bytes, flags: int) -> int:
        """Write ``data`` at ``offset``, dropping anything after it; returns bytes written."""
        logger.info("write(ino=%d, fh=%d, offset=%d, len(data)=%d, flags=%d)", ino, fh, offset, len(data), flags)
        if not fh & FILE_HANDLE_WRITE_BIT:
            raise _error(errno.EACCES, f"handle {fh} is not open for writing")
        inode = self.fs.get_inode(ino)
        if inode is None:
            raise _error(errno.EBADF, f"inode {ino}")
        if isinstance(inode, DirectoryInode):
            raise _error(errno.EISDIR, f"inode {ino}")
        if not isinstance(inode, FileInode):
            raise _error(errno.EINVAL, f"inode {ino} has no data")
        try:
            inode.write_data(data, offset)
        except ValueError as exc:
            raise _error(errno.EINVAL, str(exc)) from exc
        _touch(inode)
        inode.attrs.size = len(inode.data)
        inode.attrs.blocks = blocks_for(inode.attrs.size, self.fs.block_size)
        return len(data)

    def release(self, req: Request, ino: int, fh: int, flags: int, flush: bool) -> None:
        """Close one handle on ``ino``."""
        logger.info("release(ino=%d, fh=%d, flags=%d, flush=%s)", ino, fh, flags, flush)
        try:
            self.fs.release_file_handle(ino)
        except KeyError as exc:
            raise _error(errno.EBADF, f"no handle open on inode {ino}") from exc

    def unlink(self, req: Request, parent: int, name: str) -> None:
        """Remove the entry ``name`` from directory ``parent``."""
        logger.info("unlink(parent=%d, name=%s)", parent, name)
        parent_inode = self.fs.get_inode(parent)
        if parent_inode is None:
            raise _error(errno.EBADF, f"inode {parent}")
        if not _writable(parent_inode, req):
            raise _error(errno.EACCES, f"inode {parent}")
        directory = _as_directory(parent_inode)
        for child_ino in directory.contents:
            child = self.fs.get_inode(child_ino)
            if child is not None and child.name == name:
                self.fs.remove_inode(child_ino)
                directory.contents.remove(child_ino)
                break
        _touch(directory)

    def create(self, req: Request, parent: int, name: str, mode: int, umask: int, flags: int) -> CreatedFile:
        """Create and open a regular file ``name`` in directory ``parent``."""
        logger.info("create(parent=%d, name=%s, mode=%o, umask=%o, flags=%d)", parent, name, mode, umask, flags)
        parent_inode = self.fs.get_inode(parent)
        if parent_inode is None:
            raise _error(errno.EEXIST, f"inode {parent}")
        directory = _as_directory(parent_inode)
        target_path = _join(directory.path, name)
        for child_ino in directory.contents:
            child = self.fs.get_inode(child_ino)
            if child is not None and child.path == target_path:
                raise _error(errno.EEXIST, target_path)
        readable, writable = _access_mode(flags)
        if not _writable(directory, req):
            raise _error(errno.EACCES, f"inode {parent}")
        if not 0 <= mode <= 0xFFFF:
            raise _error(errno.EINVAL, f"mode {mode:o}")
        _touch(directory)
        created = self.fs.create_inode(
            target_path, FileType.REGULAR_FILE, mode, 0, req.uid, req.gid, directory.inode_num, ""
        )
        fh = self.fs.allocate_file_handle(created.inode_num, readable, writable)
        return CreatedFile(attrs=created.attrs, fh=fh)

    def rename(self, req: Request, parent: int, name: str, new_parent: int, new_name: str, flags: int) -> None:
        """Move ``name`` in ``parent`` to ``new_name`` in ``new_parent``."""
        logger.info(
            "rename(parent=%d, name=%s, new_parent=%d, new_name=%s, flags=%d)",
            parent, name, new_parent, new_name, flags,
        )
        old_dir_inode = self.fs.get_inode(parent)
        new_dir_inode = self.fs.get_inode(new_parent)
        if old_dir_inode is None or new_dir_inode is None:
            raise _error(errno.EPERM, f"inode {parent if old_dir_inode is None else new_parent}")
        source_path = _join(old_dir_inode.path, name)
        target_path = _join(new_dir_inode.path, new_name)
        source = self.fs.get_inode_by_path(source_path)
        if source is None:
            raise _error(errno.EPERM, source_path)
        if self.fs.get_inode_by_path(target_path) is not None:
            raise _error(errno.EINVAL, f"{target_path} exists")
        if not _readable(source, req) or not _writable(new_dir_inode, req):
            raise _error(errno.EPERM, source_path)
        old_dir = _as_directory(old_dir_inode)
        new_dir = _as_directory(new_dir_inode)

        _touch(source, old_dir, new_dir)
        if old_dir is not new_dir:
            if source.inode_num in old_dir.contents:
                old_dir.contents.remove(source.inode_num)
            if source.inode_num not in new_dir.contents:
                new_dir.contents.append(source.inode_num)

        self.fs.remove_inode(source.inode_num)
        source.parent = new_dir.inode_num
        source.path = target_path
        source.name = new_name
        self.fs.set_inode(source.inode_num, source)

    def setattr(
        self,
        req: Request,
        ino: int,
        mode: Optional[int] = None,
        uid: Optional[int] = None,
        gid: Optional[int] = None,
        size: Optional[int] = None,
        atime: TimeOrNow = None,
        mtime: TimeOrNow = None,
        fh: Optional[int] = None,
    ) -> FileAttr:
        """Change the given attributes of ``ino``; ``NOW`` stands for the current time."""
        logger.info(
            "setattr(ino=%d, mode=%r, uid=%r, gid=%r, size=%r, atime=%r, mtime=%r, fh=%r)",
            ino, mode, uid, gid, size, atime, mtime, fh,
        )
        inode = self.fs.get_inode(ino)
        if inode is None:
            raise _error(errno.EPERM, f"inode {ino}")
        if not _writable(inode, req):
            raise _error(errno.EPERM, f"inode {ino}")
        attrs = inode.attrs
        if mode is not None:
            attrs.perm = (mode & ~S_ISGID) & 0xFFFF
        if uid is not None:
            attrs.uid = uid
        if gid is not None:
            attrs.gid = gid
        if size is not None:
            attrs.size = size
        if atime is not None:
            attrs.atime = time.time() if atime == NOW else float(atime)
        if mtime is not None:
            attrs.mtime = time.time() if mtime == NOW else float(mtime)
        return attrs

    def symlink(self, req: Request, parent: int, link_name: str, target: Union[str, os.PathLike]) -> FileAttr:
        """Create link ``link_name`` in ``parent`` pointing at ``target``."""
        target_text = os.fspath(target)
        logger.info("symlink(parent=%d, link_name=%s, target=%s)", parent, link_name, target_text)
        parent_inode = self.fs.get_inode(parent)
        if parent_inode is None:
            raise _error(errno.EPERM, f"inode {parent}")
        if not _writable(parent_inode, req):
            raise _error(errno.EACCES, f"inode {parent}")
        directory = _as_directory(parent_inode)
        path = _join(directory.path, link_name)
        size = len(target_text.encode())

        target_inode = self.fs.get_inode_by_path(_join("/", target_text))
        if target_inode is not None:
            relative = PurePosixPath(target_inode.path).relative_to("/")
            canonical = str(PurePosixPath(self.fs.mountpoint) / relative)
            link = self.fs.create_symlink(
                path, 0o777, size, req.uid, req.gid, parent, target_inode.inode_num, canonical
            )
        else:
            link = self.fs.create_symlink(path, 0o777, size, req.uid, req.gid, parent, 0, target_text)
        return link.attrs

    def readlink(self, req: Request, ino: int) -> bytes:
        """The text stored in link ``ino``."""
        logger.info("readlink(ino=%d)", ino)
        inode = self.fs.get_inode(ino)
        if inode is None:
            raise _error(errno.ENOENT, f"inode {ino}")
        resolved = self.fs.resolve_symlink(inode)
        if resolved is None or not isinstance(inode, LinkInode):
            raise _error(errno.ENOSYS, f"inode {ino} is not a link")
        if not _readable(resolved, req):
            raise _error(errno.EACCES, f"inode {resolved.inode_num}")
        text = inode.symlink_data()
        return text.encode() if text is not None else b""


def default_filesystem(mountpoint: str) -> FilesystemOperations:
    """The filesystem served at startup: two small files in the root."""
    logger.info("Mount point set to %s", mountpoint)
    return FilesystemOperations(TreeFilesystem(DEFAULT_CONTENTS, mountpoint))