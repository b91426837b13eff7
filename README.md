# sifimage

`sifimage` reads, creates and modifies files in the Singularity Image Format
(SIF). A SIF file is made of three parts: a global header, a table of object
descriptors, and the data objects themselves. Data objects can be definition
files, partitions such as squashfs root filesystems, signatures, SBOMs and
other kinds. The package uses only the standard library.

## Installation

```
pip install sifimage
```

## Creating an image

```python
from sifimage.create import create_container_at_path
from sifimage.descriptor_input import DescriptorInput, partition_metadata
from sifimage.types import DataType, FSType, PartType

with open("rootfs.squashfs", "rb") as rootfs:
    part = DescriptorInput(
        DataType.PARTITION,
        rootfs,
        metadata=partition_metadata(FSType.SQUASH, PartType.PRIM_SYS, "amd64"),
    )
    with create_container_at_path("image.sif", descriptors=[part]) as image:
        print(image.primary_arch)  # "amd64"
```

`create_container` (which writes to an open stream) and
`create_container_at_path` both take these keyword arguments:

- `launch_script`: at most 31 bytes.
- `image_id`: a UUID string.
- `deterministic`: a zero ID and the zero time, so the output is reproducible.
- `time`: a `datetime`.
- `descriptor_capacity`: defaults to 48.
- `descriptors`: the data objects to write.
- `close_on_unload`

If no ID or time is given, the image gets a random ID and the current time.
If `create_container_at_path` fails, it removes the file it created.

`DescriptorInput` has these options:

- `group_id`: defaults to 1. Use `None` for no group.
- `linked_id` or `linked_group_id`
- `alignment`: partitions are aligned to 4096 bytes unless you give another value. Other objects are not aligned.
- `name`: at most 128 bytes.
- `time`
- `metadata`

`metadata` is built with one of these functions:

- `partition_metadata`
- `signature_metadata`: takes a hash name such as `"sha256"` and a fingerprint.
- `crypto_message_metadata`
- `sbom_metadata`

If the metadata does not match the data type, `UnexpectedDataTypeError` is
raised.

## Reading an image

```python
from sifimage.image import load_container_from_path, with_data_type, with_id
from sifimage.types import DataType

with load_container_from_path("image.sif", writable=False) as image:
    for descriptor in image.get_descriptors(with_data_type(DataType.PARTITION)):
        print(descriptor.id, descriptor.name, descriptor.size)
        print(descriptor.partition_metadata())
    signature = image.get_descriptor(with_id(3))
    data = signature.get_data()
```

`load_container_from_path` opens the file for reading and writing unless
`writable=False` is passed. `load_container` loads from a stream that is
already open.

You can pass several selectors at once; an object is returned only if every
selector matches it. The selectors are:

- `with_data_type`
- `with_id`
- `with_no_group`
- `with_group_id`
- `with_linked_id`
- `with_linked_group_id`
- `with_partition_type`

When a lookup fails, one of these exceptions from `sifimage.errors` is raised.
They all derive from `SIFError`.

- `NoObjectsError`: the image holds no objects.
- `ObjectNotFoundError`: no object matches.
- `MultipleObjectsFoundError`: more than one object matches `get_descriptor`.
- `InvalidObjectIDError` or `InvalidGroupIDError`: a selector was given a zero ID.

`Descriptor` gives access to an object's data and metadata:

- `get_reader()` and `get_data()` read the object's data.
- `partition_metadata()`, `signature_metadata()`, `crypto_message_metadata()` and `sbom_metadata()` return the metadata for each kind of object.
- `integrity_bytes()` returns the descriptor fields that are integrity-protected.

`FileImage.header_integrity_bytes()` returns the same kind of data for the
global header.

## Modifying an image

```python
from sifimage.create import add_object, delete_object, set_primary_partition
from sifimage.image import load_container_from_path

with load_container_from_path("image.sif") as image:
    set_primary_partition(image, 2)
    delete_object(image, 1, zero=True)
```

`set_primary_partition` works only on system partitions. Any existing primary
partition becomes a plain system partition.

`delete_object` options:

- `zero=True` overwrites the object's data with zero bytes.
- `compact=True` truncates the file. It is allowed only for the last object in the file.

`add_object`, `delete_object` and `set_primary_partition` also take
`deterministic` and `time`, which set the recorded modification time.

## In-memory images

`sifimage.buffer.Buffer` is a growable in-memory byte store. It supports:

- `read_at`, `read`, `write`, `seek`, `tell` and `truncate`
- `getvalue` and `len()`

It can be passed to `create_container` and `load_container` in place of a file:

```python
from sifimage.buffer import Buffer
from sifimage.create import create_container
from sifimage.image import load_container

buf = Buffer()
create_container(buf, deterministic=True)
image = load_container(Buffer(buf.getvalue()))
```

## Mounting

`sifimage.mount.mount(path, mount_path)` mounts an image's primary squashfs
partition using the external `squashfuse` program.
`sifimage.mount.unmount(mount_path)` releases it with `fusermount`.

- Both programs must be installed on the system.
- Their output is discarded unless `stdout` or `stderr` is given.
- To use a specific program, pass `squashfuse_path` or `fusermount_path`. The value must be a relative or absolute path, not a bare name.
- Failures raise `SIFError`.

## What it does not do

This package is a library only. It installs no command-line program. To list,
dump or edit images, call the functions above from your own code. It does not
sign or verify images. It only stores and reads signature objects and their
metadata.