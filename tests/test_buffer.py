import io

import pytest

from sifimage.buffer import Buffer


def test_read_at_negative_offset():
    b = Buffer(b"\x01\x02")
    with pytest.raises(ValueError, match="negative offset"):
        b.read_at(1, -1)


def test_read_at_offset_eof():
    b = Buffer(b"\x01\x02")
    with pytest.raises(EOFError):
        b.read_at(1, 2)


@pytest.mark.parametrize(
    "size, want",
    [
        (1, b"\x01"),
        (2, b"\x01\x02"),
        (3, b"\x01\x02"),
    ],
)
def test_read_at(size, want):
    b = Buffer(b"\x01\x02")
    assert b.read_at(size, 0) == want
    assert b.tell() == 0


def test_read_advances_position():
    b = Buffer(b"\x01\x02\x03")
    assert b.read(2) == b"\x01\x02"
    assert b.tell() == 2
    assert b.read() == b"\x03"
    assert b.read() == b""


@pytest.mark.parametrize(
    "pos, data, want_buf, want_pos",
    [
        (0, b"\x03\x04", b"\x03\x04", 2),
        (1, b"\x03\x04", b"\x01\x03\x04", 3),
        (2, b"\x03\x04", b"\x01\x02\x03\x04", 4),
    ],
)
def test_write(pos, data, want_buf, want_pos):
    b = Buffer(b"\x01\x02")
    b.seek(pos)
    assert b.write(data) == 2
    assert b.getvalue() == want_buf
    assert b.tell() == want_pos


def test_write_past_end_zero_fills():
    b = Buffer(b"\x01")
    b.seek(3)
    b.write(b"\x09")
    assert b.getvalue() == b"\x01\x00\x00\x09"


def test_seek_invalid_whence():
    b = Buffer(b"\x01\x02")
    with pytest.raises(ValueError, match="invalid whence"):
        b.seek(0, -1)


@pytest.mark.parametrize(
    "offset, whence",
    [
        (-1, io.SEEK_SET),
        (-2, io.SEEK_CUR),
        (-3, io.SEEK_END),
    ],
)
def test_seek_negative_position(offset, whence):
    b = Buffer(b"\x01\x02")
    b.seek(1)
    with pytest.raises(ValueError, match="negative position"):
        b.seek(offset, whence)
    assert b.tell() == 1


@pytest.mark.parametrize(
    "offset, whence, want",
    [
        (0, io.SEEK_SET, 0),
        (2, io.SEEK_SET, 2),
        (-1, io.SEEK_CUR, 0),
        (1, io.SEEK_CUR, 2),
        (0, io.SEEK_END, 2),
        (-2, io.SEEK_END, 0),
    ],
)
def test_seek(offset, whence, want):
    b = Buffer(b"\x01\x02")
    b.seek(1)
    assert b.seek(offset, whence) == want
    assert b.tell() == want


@pytest.mark.parametrize("size", [-1, 3])
def test_truncate_out_of_range(size):
    b = Buffer(b"\x01\x02")
    with pytest.raises(ValueError, match="truncation out of range"):
        b.truncate(size)
    assert b.getvalue() == b"\x01\x02"


@pytest.mark.parametrize(
    "size, want",
    [
        (0, b""),
        (1, b"\x01"),
        (2, b"\x01\x02"),
    ],
)
def test_truncate(size, want):
    b = Buffer(b"\x01\x02")
    b.truncate(size)
    assert b.getvalue() == want


@pytest.mark.parametrize("data", [b"", b"\x01"])
def test_getvalue(data):
    assert Buffer(data).getvalue() == data


def test_getvalue_default_empty():
    assert Buffer().getvalue() == b""


@pytest.mark.parametrize("data, want", [(b"", 0), (b"\x01", 1)])
def test_len(data, want):
    assert len(Buffer(data)) == want