"""Creating SIF images and adding, deleting and modifying their data objects."""

from __future__ import annotations

import os
import uuid
from datetime import datetime, timezone
from typing import Any

from sifimage.arch import Arch, sif_arch
from sifimage.descriptor import Descriptor, Partition, RawDescriptor
from sifimage.descriptor_input import DescriptorInput, unix_seconds
from sifimage.errors import MultipleObjectsFoundError, NoObjectsError, ObjectNotFoundError, SIFError
from sifimage.image import FileImage, Selector, with_id, with_partition_type
from sifimage.types import CURRENT_VERSION, HDR_LAUNCH_LEN, HDR_MAGIC, DataType, Header, PartType

DEFAULT_DESCRIPTORS_OFFSET = 4096
DEFAULT_DESCRIPTOR_CAPACITY = 48

_COPY_CHUNK = 64 * 1024
_ZERO_CHUNK = 4096


def next_aligned(offset: int, alignment: int) -> int:
    """Return the first offset at or after offset that satisfies alignment."""
    if alignment != 0 and offset % alignment != 0:
        offset = (offset & ~(alignment - 1)) + alignment
    return offset


def _resolve_time(deterministic: bool, time: datetime | None) -> datetime | None:
    """Pick the time to record; None stands for the zero time."""
    if time is not None:
        return time
    if deterministic:
        return None
    return datetime.now(timezone.utc)


def _copy(source: Any, rw: Any) -> int:
    """Copy everything readable from source to rw, returning the byte count."""
    if source is None:
        return 0
    total = 0
    while True:
        chunk = source.read(_COPY_CHUNK)
        if not chunk:
            return total
        rw.write(chunk)
        total += len(chunk)


def _write_data_object_at(
    rw: Any, offset_unaligned: int, di: DescriptorInput, t: datetime | None, raw: RawDescriptor
) -> None:
    offset = rw.seek(next_aligned(offset_unaligned, di.alignment))
    size = _copy(di.source, rw)
    di.fill_descriptor(raw, t)
    raw.used = True
    raw.offset = offset
    raw.size = size
    raw.size_with_padding = offset - offset_unaligned + size


def _write_data_object(image: FileImage, index: int, di: DescriptorInput, t: datetime | None) -> None:
    if index >= len(image.descriptors):
        raise SIFError("insufficient descriptor capacity to add data object(s) to image")

    metadata = di.metadata
    if isinstance(metadata, Partition) and metadata.parttype == PartType.PRIM_SYS:
        try:
            existing = image.get_descriptors(with_partition_type(PartType.PRIM_SYS))
        except NoObjectsError:
            existing = []
        if existing:
            raise SIFError("image already contains a primary partition")
        image.header.arch = metadata.arch if isinstance(metadata.arch, Arch) else Arch(metadata.arch)

    raw = image.descriptors[index]
    raw.id = index + 1

    header = image.header
    _write_data_object_at(image.rw, header.data_offset + header.data_size, di, t, raw)

    current = image.min_ids.get(raw.group_id)
    if current is None or raw.id < current:
        image.min_ids[raw.group_id] = raw.id

    header.descriptors_free -= 1
    header.data_size += raw.size_with_padding


def _write_descriptors(image: FileImage) -> None:
    image.rw.seek(image.header.descriptors_offset)
    image.rw.write(b"".join(raw.pack() for raw in image.descriptors))


def _write_header(image: FileImage) -> None:
    image.rw.seek(0)
    image.rw.write(image.header.pack())


def _find(image: FileImage, *selectors: Selector) -> RawDescriptor:
    """Return the single in-use raw descriptor matched by every selector."""
    found: RawDescriptor | None = None
    for raw in image.descriptors:
        if not raw.used:
            continue
        d = Descriptor(raw, image.rw, raw.id - image.min_ids.get(raw.group_id, 0))
        if all(select(d) for select in selectors):
            if found is not None:
                raise MultipleObjectsFoundError()
            found = raw
    if found is None:
        raise ObjectNotFoundError()
    return found


def create_container(
    rw: Any,
    *,
    launch_script: str = "",
    image_id: str | None = None,
    deterministic: bool = False,
    time: datetime | None = None,
    descriptor_capacity: int = DEFAULT_DESCRIPTOR_CAPACITY,
    descriptors: tuple[DescriptorInput, ...] | list[DescriptorInput] = (),
    close_on_unload: bool = True,
) -> FileImage:
    """Create a new SIF image in rw and return it.

    The image ID is random unless image_id is given or deterministic is set;
    the creation time is now unless time is given or deterministic is set.
    """
    script = launch_script.encode()
    if len(script) >= HDR_LAUNCH_LEN:
        raise SIFError("launch script too large")

    if image_id is not None:
        id_value = uuid.UUID(image_id)
    elif deterministic:
        id_value = uuid.UUID(int=0)
    else:
        id_value = uuid.uuid4()

    t = _resolve_time(deterministic, time)
    seconds = unix_seconds(t)

    raws = [RawDescriptor() for _ in range(descriptor_capacity)]
    raws_size = descriptor_capacity * RawDescriptor.SIZE

    header = Header(
        launch_script=script.ljust(HDR_LAUNCH_LEN, b"\x00"),
        magic=HDR_MAGIC,
        version=CURRENT_VERSION.header_bytes(),
        arch=Arch.UNKNOWN,
        id=id_value,
        created_at=seconds,
        modified_at=seconds,
        descriptors_free=descriptor_capacity,
        descriptors_total=descriptor_capacity,
        descriptors_offset=DEFAULT_DESCRIPTORS_OFFSET,
        descriptors_size=raws_size,
        data_offset=DEFAULT_DESCRIPTORS_OFFSET + raws_size,
    )

    image = FileImage(rw, header, raws, close_on_unload=close_on_unload)
    image.descriptors = raws

    for index, di in enumerate(descriptors):
        _write_data_object(image, index, di, t)

    _write_descriptors(image)
    _write_header(image)
    return image


def create_container_at_path(path: Any, **kwargs: Any) -> FileImage:
    """Create a new SIF image file at path; the file is closed on unload.

    Takes the same keyword arguments as create_container. On failure the file
    is removed.
    """
    fd = os.open(path, os.O_RDWR | os.O_CREAT | os.O_TRUNC, 0o755)
    fp = os.fdopen(fd, "r+b")
    try:
        image = create_container(fp, **kwargs)
    except BaseException:
        fp.close()
        os.remove(path)
        raise
    image.close_on_unload = True
    return image


def add_object(
    image: FileImage,
    descriptor_input: DescriptorInput,
    *,
    deterministic: bool = False,
    time: datetime | None = None,
) -> None:
    """Add a data object and its descriptor to image."""
    t = _resolve_time(deterministic, time)

    index = next(
        (i for i, raw in enumerate(image.descriptors) if not raw.used),
        len(image.descriptors),
    )

    _write_data_object(image, index, descriptor_input, t)
    _write_descriptors(image)
    image.header.modified_at = unix_seconds(t)
    _write_header(image)


def _zero_data(image: FileImage, raw: RawDescriptor) -> None:
    image.rw.seek(raw.offset)
    remaining = raw.size
    while remaining > 0:
        n = min(remaining, _ZERO_CHUNK)
        image.rw.write(bytes(n))
        remaining -= n


def _reset_descriptor(image: FileImage, index: int) -> None:
    # Without a primary partition the image no longer depends on an architecture.
    if image.descriptors[index].is_partition_of_type(PartType.PRIM_SYS):
        image.header.arch = Arch.UNKNOWN

    image.rw.seek(image.header.descriptors_offset + index * RawDescriptor.SIZE)
    empty = RawDescriptor()
    image.rw.write(empty.pack())
    image.descriptors[index] = empty

    min_ids: dict[int, int] = {}
    for raw in image.descriptors:
        if raw.used and (raw.group_id not in min_ids or raw.id < min_ids[raw.group_id]):
            min_ids[raw.group_id] = raw.id
    image.min_ids = min_ids


def _is_last(image: FileImage, raw: RawDescriptor) -> bool:
    end = raw.offset + raw.size
    return all(other.offset + other.size <= end for other in image.descriptors if other.used)


def delete_object(
    image: FileImage,
    object_id: int,
    *,
    zero: bool = False,
    compact: bool = False,
    deterministic: bool = False,
    time: datetime | None = None,
) -> None:
    """Delete the data object with object_id.

    zero overwrites the object's data with zero bytes; compact truncates the
    image after removing the object, which must be the last one.
    """
    t = _resolve_time(deterministic, time)

    raw = _find(image, with_id(object_id))

    if compact and not _is_last(image, raw):
        raise SIFError("compact not implemented for non-last object")

    if zero:
        _zero_data(image, raw)

    if compact:
        image.rw.truncate(raw.offset + raw.size - raw.size_with_padding)
        image.header.data_size -= raw.size_with_padding

    image.header.descriptors_free += 1
    image.header.modified_at = unix_seconds(t)

    index = next((i for i, od in enumerate(image.descriptors) if od.id == object_id), 0)

    _reset_descriptor(image, index)
    _write_header(image)


def set_primary_partition(
    image: FileImage,
    object_id: int,
    *,
    deterministic: bool = False,
    time: datetime | None = None,
) -> None:
    """Make the system partition object_id the primary system partition."""
    t = _resolve_time(deterministic, time)

    raw = _find(image, with_id(object_id))

    if raw.data_type != DataType.PARTITION:
        raise SIFError("data object not a partition")

    fs, pt, arch = raw.partition_metadata()

    if pt == PartType.PRIM_SYS:
        return

    if pt != PartType.SYSTEM:
        raise SIFError("data object not a system partition")

    try:
        old = _find(image, with_partition_type(PartType.PRIM_SYS))
    except ObjectNotFoundError:
        old = None

    image.header.arch = sif_arch(arch)
    raw.set_extra(Partition(fs, PartType.PRIM_SYS, sif_arch(arch)))

    if old is not None:
        old_fs, _, old_arch = old.partition_metadata()
        old.set_extra(Partition(old_fs, PartType.SYSTEM, sif_arch(old_arch)))

    _write_descriptors(image)
    image.header.modified_at = unix_seconds(t)
    _write_header(image)