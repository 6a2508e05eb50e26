"""Layout of a 1541 disk image: geometry, directory entries and the BAM."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum

BLOCK_SIZE = 256
MAX_TRACKS = 35
DISK_TRACKS = 40
BAM_SIZE = 4 * MAX_TRACKS
ENTRY_SIZE = 32
ENTRIES_PER_BLOCK = BLOCK_SIZE // ENTRY_SIZE
NAME_LENGTH = 16
NAME_PAD = 0xA0

DIRECTORY_TRACK = 18
HEADER_SECTOR = 0
FIRST_DIRECTORY_SECTOR = 1
HEADER_BAM_OFFSET = 4

# Sectors per track of the stored image, used to locate blocks in the file.
_IMAGE_GEOMETRY = tuple(
    21 if track <= 17 else 19 if track <= 24 else 18 if track <= 30 else 17
    for track in range(1, MAX_TRACKS + 1)
)
_TRACK_OFFSETS = tuple(
    sum(_IMAGE_GEOMETRY[:index]) * BLOCK_SIZE for index in range(MAX_TRACKS)
)

# Each track owns a free count and three bitmap bytes in the BAM.
_BITMAP_SECTORS = 24

_ENTRY = struct.Struct("<2BB2B16s2BB6sH")


class D64Error(Exception):
    """A disk image or a value read from it is not valid."""


class FileType(IntEnum):
    """File type byte of a directory entry."""

    DEL = 0x80
    SEQ = 0x81
    PRG = 0x82
    USR = 0x83
    REL = 0x84


def sectors_per_track(track: int) -> int:
    """Number of sectors the allocator walks on ``track``; 0 for none."""
    if track <= 0:
        return 0
    if track <= 17:
        return 21
    if track <= 24:
        return 19
    if track <= 34:
        return 17
    return 0


def track_offset(track: int) -> int:
    """Byte offset of the first block of ``track`` in the image."""
    if not 1 <= track <= MAX_TRACKS:
        raise D64Error(f"track out of range: {track}")
    return _TRACK_OFFSETS[track - 1]


def block_location(track: int, sector: int) -> int:
    """Byte offset of the block at ``track``/``sector`` in the image."""
    return track_offset(track) + sector * BLOCK_SIZE


def cbm_name(raw: bytes | bytearray | memoryview) -> bytes:
    """The name part of a stored or typed name.

    The name ends at a zero byte, a pad byte or a dot, and is at most
    17 bytes long.
    """
    name = bytearray()
    for byte in bytes(raw[:17]):
        if byte in (0, NAME_PAD, ord(".")):
            break
        name.append(byte)
    return bytes(name)


@dataclass
class FileEntry:
    """One 32 byte directory entry."""

    next_block: tuple[int, int] = (0, 0)
    file_type: int = 0
    data_block: tuple[int, int] = (0, 0)
    file_name: bytes = b""
    side_sector: tuple[int, int] = (0, 0)
    record_size: int = 0
    unused: bytes = bytes(6)
    file_size: int = 0

    def __post_init__(self) -> None:
        name = bytes(self.file_name)
        if len(name) > NAME_LENGTH:
            raise D64Error(f"file name longer than {NAME_LENGTH} bytes: {name!r}")
        self.file_name = name.ljust(NAME_LENGTH, bytes([NAME_PAD]))
        if len(self.unused) != 6:
            raise D64Error("unused field must be 6 bytes")
        if not 0 <= self.file_size <= 0xFFFF:
            raise D64Error(f"file size out of range: {self.file_size}")

    @property
    def name(self) -> bytes:
        """The file name without its padding."""
        return cbm_name(self.file_name)

    @classmethod
    def from_bytes(cls, data: bytes | bytearray | memoryview) -> FileEntry:
        """Decode an entry from exactly 32 bytes."""
        data = bytes(data)
        if len(data) != ENTRY_SIZE:
            raise D64Error(f"a directory entry is {ENTRY_SIZE} bytes, got {len(data)}")
        (nt, ns, file_type, dt, ds, name, st, ss,
         record_size, unused, file_size) = _ENTRY.unpack(data)
        return cls(
            next_block=(nt, ns),
            file_type=file_type,
            data_block=(dt, ds),
            file_name=name,
            side_sector=(st, ss),
            record_size=record_size,
            unused=unused,
            file_size=file_size,
        )

    def to_bytes(self) -> bytes:
        """Encode the entry as 32 bytes."""
        return _ENTRY.pack(
            *self.next_block,
            self.file_type,
            *self.data_block,
            self.file_name,
            *self.side_sector,
            self.record_size,
            self.unused,
            self.file_size,
        )


class Bam:
    """The block availability map: per track a free count and a bitmap."""

    def __init__(self, data: bytes | bytearray | memoryview | None = None):
        if data is None:
            data = bytes(BAM_SIZE)
        data = bytearray(data)
        if len(data) != BAM_SIZE:
            raise D64Error(f"a BAM is {BAM_SIZE} bytes, got {len(data)}")
        self._data = data

    @classmethod
    def from_bytes(cls, data: bytes | bytearray | memoryview) -> Bam:
        """Load a BAM from its 140 stored bytes."""
        return cls(data)

    def to_bytes(self) -> bytes:
        """The 140 bytes to store in the disk header."""
        return bytes(self._data)

    def free_count(self, track: int) -> int:
        """The free sector count recorded for ``track``."""
        return self._data[self._locate(track, 0)[0]]

    @staticmethod
    def _locate(track: int, sector: int) -> tuple[int, int, int]:
        if not 1 <= track <= MAX_TRACKS:
            raise D64Error(f"track out of range: {track}")
        if not 0 <= sector < _BITMAP_SECTORS:
            raise D64Error(f"sector out of range: {sector}")
        count_index = (track - 1) * 4
        byte_index = count_index + sector // 8 + 1
        # Only sectors 0-7 land on a bit of their byte; sectors from 8 up
        # map outside it and so always read as in use, as on the drive.
        shift = sector + 8 if sector >= 8 else sector
        mask = 1 << (shift % 32)
        return count_index, byte_index, mask

    def is_free(self, track: int, sector: int) -> bool:
        """Whether the block at ``track``/``sector`` is available."""
        _, byte_index, mask = self._locate(track, sector)
        return bool(mask & self._data[byte_index])

    def allocate(self, track: int, sector: int) -> None:
        """Mark a block as used, if the track still has free sectors."""
        count_index, byte_index, mask = self._locate(track, sector)
        if self._data[count_index] > 0:
            self._data[byte_index] &= (mask ^ 0xFF) & 0xFF
            self._data[count_index] -= 1

    def free(self, track: int, sector: int) -> None:
        """Mark a block as available, unless the count is already full."""
        count_index, byte_index, mask = self._locate(track, sector)
        if self._data[count_index] < 0xFF:
            self._data[byte_index] |= mask & 0xFF
            self._data[count_index] += 1

    def find_empty_block(self, track: int, sector: int) -> tuple[int, int] | None:
        """The first free block from ``track``/``sector`` on, or None.

        The directory track is stepped over when moving on from track 17.
        """
        while track <= MAX_TRACKS:
            if sector < _BITMAP_SECTORS and self.is_free(track, sector):
                return track, sector
            sector = (sector + 1) & 0xFF
            # A track with no listed sectors wraps like a byte counter.
            if sector == sectors_per_track(track):
                track += 2 if track == 17 else 1
                sector = 0
        return None