# dnsfs

`dnsfs` is a small filesystem that lives entirely in memory. Files,
directories and symbolic links are kept as inodes in a tree keyed by inode
number. A set of request-level operations (`getattr`, `readdir`, `lookup`,
`open`, `read`, `write`, `release`, `create`, `unlink`, `rename`, `setattr`,
`symlink`, `readlink`) answers requests against that tree the way a
userspace filesystem daemon answers kernel requests.

The package has no dependencies outside the standard library.

## Modules

- `dnsfs.inode` — the inode records `FileInode`, `DirectoryInode` and
  `LinkInode`, their attributes (`FileAttr`, with its kind given as a
  `FileType`) and `blocks_for(size, block_size)`, the number of blocks a
  file of a given size occupies. `FileInode.write_data(data, offset)`
  replaces everything from `offset` onwards with `data` (an offset past the
  end raises `ValueError`); `LinkInode.symlink_data()` returns the stored
  link text, or `None` when it is empty.
- `dnsfs.permissions` — `can_read`, `can_write` and `can_execute`, which
  check an octal mode against the owner, the group and the requesting user
  and group. A request with uid 0 and gid 0 is always allowed. `FileHandles`
  counts open handles per inode; `allocate(ino, can_read, can_write)` returns
  a handle number with `FILE_HANDLE_READ_BIT` and `FILE_HANDLE_WRITE_BIT`
  set as asked, and `release(ino)` closes one (a `KeyError` if no handle was
  ever opened on that inode).
- `dnsfs.tree` — `TreeFilesystem`, the inode tree: `create_inode` for files
  and directories, `create_symlink`, `get_inode`, `get_inode_by_path`,
  `set_inode`, `remove_inode`, `resolve_symlink` (follows a chain of links to
  its last inode in the tree, raising `OSError` with `ELOOP` on a cycle) and
  `allocate_file_handle` / `release_file_handle`.
- `dnsfs.operations` — `FilesystemOperations`, the request-level
  operations, with `Request` describing the caller (`uid`, `gid`, `pid`),
  `DirEntry` for directory listings and `CreatedFile` for the result of
  `create`. It also defines the flag values `O_RDONLY`, `O_WRONLY`,
  `O_RDWR`, `O_ACCMODE`, `O_TRUNC` and the `NOW` marker for `setattr`.

Failures in `FilesystemOperations` are raised as `OSError` whose `errno` is
the code a caller should see: `ENOENT`, `EACCES`, `EPERM`, `EINVAL`,
`EEXIST`, `EBADF`, `ENOSYS`, `ENOTDIR` or `EISDIR`.

## Getting started

`default_filesystem(mountpoint)` builds a ready-to-use tree: a root
directory `/` (inode 1) owned by uid and gid 1000 with mode `0o755`, holding
two regular files with mode `0o644`:

| inode | path      | contents |
|-------|-----------|----------|
| 2     | `/answer` | `42`     |
| 3     | `/foo`    | `bar`    |

```python
from dnsfs.operations import O_RDONLY, Request, default_filesystem

ops = default_filesystem("/mnt/dnsfs")
req = Request(uid=1000, gid=1000)

attrs = ops.lookup(req, 1, "foo")
fh = ops.open(req, attrs.ino, O_RDONLY)
print(ops.read(req, attrs.ino, fh, 0, 4096, 0))   # b'bar'
ops.release(req, attrs.ino, fh, 0, False)

for entry in ops.readdir(req, 1, 0, 0):
    print(entry.ino, entry.kind, entry.name)
```

The mountpoint is used when a symlink points at a path inside the tree: the
link's stored text is rewritten relative to the mountpoint, so that
`readlink` gives a path that can be followed from outside.

## Behaviour worth knowing

- `readdir` returns `.`, `..` and every entry when asked at offset 0, and an
  empty list at any other offset.
- Opening a file read-only with `O_TRUNC` is refused with `EACCES`; an
  unknown access mode is refused with `EINVAL`.
- Writes are only accepted on handles opened for writing. A write replaces
  everything from the offset onwards, and the file's size and block count
  follow the new length.
- `create` fails with `EEXIST` when the name is already taken.
- Renaming onto a path that already exists fails with `EINVAL`.
- `setattr` clears the set-group-id bit from any mode it is given; pass
  `NOW` as `atime` or `mtime` to use the current time.
- Reading a symlink reads the file at the end of its chain of links.

## What it does not do

- It does not mount anything and has no command-line program: the
  operations are plain method calls on `FilesystemOperations`.
- Nothing is stored on disk; the tree is lost when the process ends.
- There are no `mkdir`, `rmdir` or hard-link operations. Directories can be
  added only through `TreeFilesystem.create_inode`.