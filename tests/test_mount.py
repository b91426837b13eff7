import io
import json
import os
import stat
import sys

import pytest

from sifimage.create import create_container_at_path
from sifimage.descriptor_input import DescriptorInput, partition_metadata
from sifimage.errors import NoObjectsError, SIFError
from sifimage.image import load_container_from_path, with_partition_type
from sifimage.mount import mount, unmount
from sifimage.types import DataType, FSType, PartType


def _make_helper(tmp_path, name, exit_code=0, out="", err=""):
    record = tmp_path / f"{name}.json"
    script = tmp_path / name
    script.write_text(
        f"#!{sys.executable}\n"
        "import json, sys\n"
        f"with open({str(record)!r}, 'w') as fh:\n"
        "    json.dump(sys.argv[1:], fh)\n"
        f"sys.stdout.write({out!r})\n"
        f"sys.stderr.write({err!r})\n"
        f"sys.exit({exit_code})\n"
    )
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(script), record


def _make_image(tmp_path, fs=None, pt=PartType.PRIM_SYS):
    path = tmp_path / "image.sif"
    descriptors = []
    if fs is not None:
        descriptors.append(
            DescriptorInput(
                DataType.PARTITION,
                io.BytesIO(b"\xde\xad\xbe\xef"),
                metadata=partition_metadata(fs, pt, "386"),
            )
        )
    image = create_container_at_path(path, deterministic=True, descriptors=descriptors)
    image.unload()
    return str(path)


def _partition_offset(path):
    with load_container_from_path(path, writable=False) as image:
        return image.get_descriptor(with_partition_type(PartType.PRIM_SYS)).offset


def test_mount_rejects_bare_squashfuse_name(tmp_path):
    with pytest.raises(SIFError, match="squashfuse path must be relative or absolute"):
        mount(tmp_path / "missing.sif", tmp_path, squashfuse_path="squashfuse")


def test_unmount_rejects_bare_fusermount_name(tmp_path):
    with pytest.raises(SIFError, match="fusermount path must be relative or absolute"):
        unmount(tmp_path, fusermount_path="fusermount")


def test_mount_empty_image_has_no_objects(tmp_path):
    path = _make_image(tmp_path)
    helper, record = _make_helper(tmp_path, "fake-squashfuse")
    with pytest.raises(NoObjectsError):
        mount(path, tmp_path / "mnt", squashfuse_path=helper)
    assert not record.exists()


def test_mount_passes_offset_and_paths(tmp_path):
    path = _make_image(tmp_path, FSType.SQUASH)
    helper, record = _make_helper(tmp_path, "fake-squashfuse")
    mount_dir = tmp_path / "mnt" / "."

    mount(path, mount_dir, squashfuse_path=helper)

    offset = _partition_offset(path)
    assert offset % 4096 == 0
    assert json.loads(record.read_text()) == [
        "-o",
        f"ro,offset={offset}",
        os.path.normpath(path),
        str(tmp_path / "mnt"),
    ]


def test_mount_unsupported_filesystem(tmp_path):
    path = _make_image(tmp_path, FSType.RAW)
    helper, record = _make_helper(tmp_path, "fake-squashfuse")
    with pytest.raises(SIFError, match="unrecognized filesystem type"):
        mount(path, tmp_path / "mnt", squashfuse_path=helper)
    assert not record.exists()


def test_mount_without_primary_partition(tmp_path):
    path = _make_image(tmp_path, FSType.SQUASH, PartType.SYSTEM)
    helper, _ = _make_helper(tmp_path, "fake-squashfuse")
    with pytest.raises(SIFError, match="object not found"):
        mount(path, tmp_path / "mnt", squashfuse_path=helper)


def test_mount_helper_failure(tmp_path):
    path = _make_image(tmp_path, FSType.SQUASH)
    helper, _ = _make_helper(tmp_path, "fake-squashfuse", exit_code=1)
    with pytest.raises(SIFError, match="failed to mount"):
        mount(path, tmp_path / "mnt", squashfuse_path=helper)


def test_mount_forwards_output(tmp_path):
    path = _make_image(tmp_path, FSType.SQUASH)
    helper, _ = _make_helper(tmp_path, "fake-squashfuse", out="mounted", err="warning")
    out = io.BytesIO()
    err = io.StringIO()
    mount(path, tmp_path / "mnt", stdout=out, stderr=err, squashfuse_path=helper)
    assert out.getvalue() == b"mounted"
    assert err.getvalue() == "warning"


def test_unmount_passes_arguments(tmp_path):
    helper, record = _make_helper(tmp_path, "fake-fusermount")
    unmount(tmp_path / "mnt" / ".", fusermount_path=helper)
    assert json.loads(record.read_text()) == ["-u", str(tmp_path / "mnt")]


def test_unmount_not_mounted_fails(tmp_path):
    helper, _ = _make_helper(tmp_path, "fake-fusermount", exit_code=1, err="not mounted")
    err = io.StringIO()
    with pytest.raises(SIFError, match="failed to unmount"):
        unmount(tmp_path, stderr=err, fusermount_path=helper)
    assert err.getvalue() == "not mounted"


def test_unmount_missing_helper(tmp_path):
    with pytest.raises(SIFError, match="failed to unmount"):
        unmount(tmp_path, fusermount_path=str(tmp_path / "no-such-fusermount"))