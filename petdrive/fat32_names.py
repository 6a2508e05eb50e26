"""File name and timestamp rules of FAT32 directory entries."""

from __future__ import annotations

SHORT_NAME_LENGTH = 11
_SHORT_SUFFIX = b"~1PRG"


def _as_bytes(name: bytes | bytearray | memoryview | str) -> bytes:
    if isinstance(name, str):
        return name.encode("latin-1")
    return bytes(name).split(b"\0", 1)[0]


def _is_upper(byte: int) -> bool:
    return ord("A") <= byte <= ord("Z")


def is_long_filename(name: bytes | str) -> bool:
    """Whether ``name`` needs long directory entries to be stored."""
    name = _as_bytes(name)
    length = len(name)
    if length > 12:
        return True
    if length > 8 and name[length - 4] != ord("."):
        return True
    for index, byte in enumerate(name):
        if byte == ord(" ") or not _is_upper(byte):
            if byte == ord(".") and index == length - 4:
                continue
            return True
    return False


def to_short_filename(name: bytes | str) -> bytes:
    """The 11 byte, space padded form of a short ``NAME.EXT`` name."""
    name = _as_bytes(name)
    output = bytearray(b" " * SHORT_NAME_LENGTH)
    length = len(name)
    ext_pos = length - 4 if length >= 5 and name[length - 4] == ord(".") else 0
    if ext_pos > 0:
        base = name[:ext_pos][:8]
        output[:len(base)] = base
        output[8:11] = name[ext_pos + 1:ext_pos + 4].ljust(3, b" ")
    else:
        base = name[:SHORT_NAME_LENGTH]
        output[:len(base)] = base
    return bytes(output)


def make_short_filename(long_name: bytes | str) -> bytes:
    """The 11 byte short alias stored beside a long file name."""
    long_name = _as_bytes(long_name)
    alias = bytearray()
    for index in range(6):
        byte = long_name[index] if index < len(long_name) else 0
        if ord("a") <= byte <= ord("z"):
            byte -= 32
        if not _is_upper(byte):
            byte = ord("_")
        alias.append(byte)
    return bytes(alias) + _SHORT_SUFFIX


def lfn_checksum(short_name: bytes | bytearray | memoryview) -> int:
    """Checksum of an 11 byte short name, as held in its long entries."""
    short_name = bytes(short_name)
    if len(short_name) != SHORT_NAME_LENGTH:
        raise ValueError(
            f"a short name is {SHORT_NAME_LENGTH} bytes, got {len(short_name)}"
        )
    total = 0
    for byte in short_name:
        total = (((total & 1) << 7) + (total >> 1) + byte) & 0xFF
    return total


def chars_to_compare(name: bytes | str, max_chars: int) -> int:
    """Length of the prefix of ``name`` before a wildcard, at most ``max_chars``."""
    name = _as_bytes(name) if isinstance(name, str) else bytes(name)
    count = 0
    while count < max_chars and count < len(name) and name[count] not in (0, ord("*")):
        count += 1
    return count


def fat_date(year: int, month: int, day: int) -> int:
    """A date packed into the 16 bit form of a directory entry."""
    return (((year - 1980) << 9) + (month << 5) + day) & 0xFFFF


def fat_time(hour: int, minute: int, second: int) -> int:
    """A time packed into the 16 bit form of a directory entry."""
    return ((hour << 11) + (minute << 5) + second // 2) & 0xFFFF