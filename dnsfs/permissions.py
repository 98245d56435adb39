"""Permission checks and per-inode file handle counters."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

FILE_HANDLE_READ_BIT = 1 << 63
FILE_HANDLE_WRITE_BIT = 1 << 62


def _allowed(
    mode: int, owner_bit: int, uid: int, gid: int, req_uid: int, req_gid: int
) -> bool:
    if req_uid == 0 and req_gid == 0:
        return True
    if mode & owner_bit and req_uid == uid:
        return True
    if mode & (owner_bit >> 3) and req_gid == gid:
        return True
    return bool(mode & (owner_bit >> 6))


def can_read(mode: int, uid: int, gid: int, req_uid: int, req_gid: int) -> bool:
    """Whether the requester may read an object with the given mode and owner."""
    return _allowed(mode, 0o400, uid, gid, req_uid, req_gid)


def can_write(mode: int, uid: int, gid: int, req_uid: int, req_gid: int) -> bool:
    """Whether the requester may write an object with the given mode and owner."""
    return _allowed(mode, 0o200, uid, gid, req_uid, req_gid)


def can_execute(mode: int, uid: int, gid: int, req_uid: int, req_gid: int) -> bool:
    """Whether the requester may execute an object with the given mode and owner."""
    return _allowed(mode, 0o100, uid, gid, req_uid, req_gid)


class FileHandles:
    """Counts open handles per inode and hands out handle numbers."""

    def __init__(self) -> None:
        self._counts: dict[int, int] = {}

    def __contains__(self, ino: int) -> bool:
        return ino in self._counts

    def __getitem__(self, ino: int) -> int:
        return self._counts[ino]

    def allocate(self, ino: int, can_read: bool, can_write: bool) -> int:
        """Open a new handle on ``ino``; access bits are folded into the result."""
        fh_num = self._counts.get(ino, 0) + 1
        logger.info("allocate_file_handle: ino=%d, fh_num=%d", ino, fh_num)
        if fh_num >= min(FILE_HANDLE_READ_BIT, FILE_HANDLE_WRITE_BIT):
            raise OverflowError(f"out of file handles for inode {ino}")
        self._counts[ino] = fh_num
        fh = fh_num
        if can_read:
            fh |= FILE_HANDLE_READ_BIT
        if can_write:
            fh |= FILE_HANDLE_WRITE_BIT
        return fh

    def release(self, ino: int) -> None:
        """Close one handle on ``ino``; raises KeyError if none was ever opened."""
        fh_num = self._counts[ino]
        logger.info("release_file_handle: ino=%d, fh_num=%d", ino, fh_num - 1)
        if fh_num != 0:
            self._counts[ino] = fh_num - 1