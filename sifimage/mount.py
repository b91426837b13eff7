"""Mounting the primary system partition of an image through FUSE helpers."""

from __future__ import annotations

import io
import os
import subprocess
from typing import IO, Any

from sifimage.errors import SIFError
from sifimage.image import load_container_from_path, with_partition_type
from sifimage.types import FSType, PartType

DEFAULT_SQUASHFUSE = "squashfuse"
DEFAULT_FUSERMOUNT = "fusermount"


def _check_helper_path(path: str, what: str) -> None:
    # A bare name would be looked up on PATH; an explicit path must say where it is.
    if os.path.basename(path) == path:
        raise SIFError(f"{what} path must be relative or absolute")


def _emit(writer: IO[Any], data: bytes) -> None:
    if not data:
        return
    if isinstance(writer, io.TextIOBase):
        writer.write(data.decode("utf-8", "replace"))
    else:
        writer.write(data)


def _run(args: list[str], stdout: IO[Any] | None, stderr: IO[Any] | None, action: str) -> None:
    """Run args, sending output to the given writers or discarding it."""
    try:
        completed = subprocess.run(
            args,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE if stdout is not None else subprocess.DEVNULL,
            stderr=subprocess.PIPE if stderr is not None else subprocess.DEVNULL,
            check=False,
        )
    except OSError as exc:
        raise SIFError(f"failed to {action}: {exc}") from exc

    if stdout is not None:
        _emit(stdout, completed.stdout)
    if stderr is not None:
        _emit(stderr, completed.stderr)

    if completed.returncode != 0:
        raise SIFError(f"failed to {action}: exit status {completed.returncode}")


def mount(
    path: str | os.PathLike[str],
    mount_path: str | os.PathLike[str],
    *,
    stdout: IO[Any] | None = None,
    stderr: IO[Any] | None = None,
    squashfuse_path: str | None = None,
) -> None:
    """Mount the primary system partition of the image at path onto mount_path.

    Output of the helper process is discarded unless stdout or stderr is given.
    By default squashfuse is looked up on PATH; squashfuse_path, if given, must
    be a relative or absolute path.
    """
    if squashfuse_path is None:
        squashfuse_path = DEFAULT_SQUASHFUSE
    else:
        _check_helper_path(squashfuse_path, "squashfuse")

    path = os.fspath(path)
    mount_path = os.fspath(mount_path)

    with load_container_from_path(path, writable=False) as image:
        descriptor = image.get_descriptor(with_partition_type(PartType.PRIM_SYS))
        fs, _, _ = descriptor.partition_metadata()
        offset = descriptor.offset

    if fs != FSType.SQUASH:
        raise SIFError("unrecognized filesystem type")

    args = [
        squashfuse_path,
        "-o",
        f"ro,offset={offset}",
        os.path.normpath(path),
        os.path.normpath(mount_path),
    ]
    _run(args, stdout, stderr, "mount")


def unmount(
    mount_path: str | os.PathLike[str],
    *,
    stdout: IO[Any] | None = None,
    stderr: IO[Any] | None = None,
    fusermount_path: str | None = None,
) -> None:
    """Unmount the file system mounted at mount_path.

    Output of the helper process is discarded unless stdout or stderr is given.
    By default fusermount is looked up on PATH; fusermount_path, if given, must
    be a relative or absolute path.
    """
    if fusermount_path is None:
        fusermount_path = DEFAULT_FUSERMOUNT
    else:
        _check_helper_path(fusermount_path, "fusermount")

    args = [fusermount_path, "-u", os.path.normpath(os.fspath(mount_path))]
    _run(args, stdout, stderr, "unmount")