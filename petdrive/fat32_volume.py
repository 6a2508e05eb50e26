"""On-disk structures and allocation tables of a FAT32 volume."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Protocol

from .sd import SdError

SECTOR_SIZE = 512
ENTRY_SIZE = 32
FAT_EOF = 0x0FFFFFFF
CLUSTER_MASK = 0x0FFFFFFF
LAST_CLUSTER = 0x0FFFFFF6
INVALID = 0xFFFFFFFF

EMPTY = 0x00
DELETED = 0xE5

ATTR_READ_ONLY = 0x01
ATTR_HIDDEN = 0x02
ATTR_SYSTEM = 0x04
ATTR_VOLUME_ID = 0x08
ATTR_DIRECTORY = 0x10
ATTR_ARCHIVE = 0x20
ATTR_LONG_NAME = 0x0F

_FS_LEAD_SIGNATURE = 0x41615252
_FS_STRUCT_SIGNATURE = 0x61417272
_FS_TRAIL_SIGNATURE = 0xAA550000
_MBR_SIGNATURE = 0xAA55
_BOOT_JUMPS = (0xE9, 0xEB)
_FAT_ENTRIES_SCANNED = 128
_READ_RETRIES = 10

_DIR_ENTRY = struct.Struct("<11sBBBHHHHHHHI")
_LONG_ENTRY = struct.Struct("<B5HBBB6HH2H")


class Fat32Error(Exception):
    """The volume is not FAT32 or could not be accessed."""


class BlockDevice(Protocol):
    def read_block(self, block: int) -> bytes: ...

    def write_block(self, block: int, data: bytes) -> None: ...


@dataclass
class DirEntry:
    """A 32 byte short directory entry."""

    name: bytes = b" " * 11
    attrib: int = 0
    nt_reserved: int = 0
    time_tenth: int = 0
    create_time: int = 0
    create_date: int = 0
    last_access_date: int = 0
    first_cluster_hi: int = 0
    write_time: int = 0
    write_date: int = 0
    first_cluster_lo: int = 0
    file_size: int = 0

    def __post_init__(self) -> None:
        name = bytes(self.name)
        if len(name) > 11:
            raise Fat32Error(f"a short name is at most 11 bytes: {name!r}")
        self.name = name.ljust(11, b" ")

    @property
    def first_cluster(self) -> int:
        """The first cluster of the entry's data."""
        return (self.first_cluster_hi << 16) | self.first_cluster_lo

    @first_cluster.setter
    def first_cluster(self, cluster: int) -> None:
        self.first_cluster_hi = (cluster >> 16) & 0xFFFF
        self.first_cluster_lo = cluster & 0xFFFF

    @classmethod
    def from_bytes(cls, data: bytes | bytearray | memoryview) -> DirEntry:
        """Decode an entry from exactly 32 bytes."""
        data = bytes(data)
        if len(data) != ENTRY_SIZE:
            raise Fat32Error(f"a directory entry is {ENTRY_SIZE} bytes, got {len(data)}")
        return cls(*_DIR_ENTRY.unpack(data))

    def to_bytes(self) -> bytes:
        """Encode the entry as 32 bytes."""
        return _DIR_ENTRY.pack(
            self.name, self.attrib, self.nt_reserved, self.time_tenth,
            self.create_time, self.create_date, self.last_access_date,
            self.first_cluster_hi, self.write_time, self.write_date,
            self.first_cluster_lo, self.file_size & 0xFFFFFFFF,
        )


@dataclass
class LongEntry:
    """A 32 byte long file name entry holding 13 name characters."""

    ord: int = 0
    name1: tuple[int, ...] = (0xFFFF,) * 5
    attr: int = ATTR_LONG_NAME
    type: int = 0
    checksum: int = 0
    name2: tuple[int, ...] = (0xFFFF,) * 6
    first_cluster_lo: int = 0
    name3: tuple[int, ...] = (0xFFFF,) * 2

    def __post_init__(self) -> None:
        for field, size in (("name1", 5), ("name2", 6), ("name3", 2)):
            value = tuple(getattr(self, field))
            if len(value) != size:
                raise Fat32Error(f"{field} holds {size} characters, got {len(value)}")
            setattr(self, field, value)

    @property
    def chars(self) -> tuple[int, ...]:
        """The 13 name code units in order."""
        return self.name1 + self.name2 + self.name3

    @classmethod
    def from_bytes(cls, data: bytes | bytearray | memoryview) -> LongEntry:
        """Decode an entry from exactly 32 bytes."""
        data = bytes(data)
        if len(data) != ENTRY_SIZE:
            raise Fat32Error(f"a long entry is {ENTRY_SIZE} bytes, got {len(data)}")
        values = _LONG_ENTRY.unpack(data)
        return cls(
            ord=values[0],
            name1=values[1:6],
            attr=values[6],
            type=values[7],
            checksum=values[8],
            name2=values[9:15],
            first_cluster_lo=values[15],
            name3=values[16:18],
        )

    def to_bytes(self) -> bytes:
        """Encode the entry as 32 bytes."""
        return _LONG_ENTRY.pack(
            self.ord, *self.name1, self.attr, self.type, self.checksum,
            *self.name2, self.first_cluster_lo, *self.name3,
        )


def _u16(data: bytes, offset: int) -> int:
    return int.from_bytes(data[offset:offset + 2], "little")


def _u32(data: bytes, offset: int) -> int:
    return int.from_bytes(data[offset:offset + 4], "little")


class Fat32Volume:
    """The boot parameters, FAT and FSInfo sector of a FAT32 volume."""

    def __init__(self, device: BlockDevice):
        self.device = device
        self.bytes_per_sector = SECTOR_SIZE
        self.sectors_per_cluster = 1
        self.reserved_sectors = 0
        self.root_cluster = 0
        self.first_data_sector = 0
        self.total_clusters = 0
        self.unused_sectors = 0
        self.free_count_valid = False

    # sector access

    def read_sector(self, sector: int) -> bytearray:
        """Read one sector, retrying a few times on card errors."""
        last_error: SdError | None = None
        for _ in range(_READ_RETRIES):
            try:
                return bytearray(self.device.read_block(sector))
            except SdError as error:
                last_error = error
        raise Fat32Error(f"cannot read sector {sector}") from last_error

    def write_sector(self, sector: int, data: bytes | bytearray | memoryview) -> None:
        """Write one sector."""
        try:
            self.device.write_block(sector, bytes(data))
        except SdError as error:
            raise Fat32Error(f"cannot write sector {sector}") from error

    # boot sector

    def mount(self) -> None:
        """Read the boot parameters, following the partition table if needed."""
        self.unused_sectors = 0
        boot = bytes(self.read_sector(0))
        if boot[0] not in _BOOT_JUMPS:
            if _u16(boot, 510) != _MBR_SIGNATURE:
                raise Fat32Error("no boot sector or partition table found")
            first_partition = 446
            self.unused_sectors = _u32(boot, first_partition + 8)
            boot = bytes(self.read_sector(self.unused_sectors))
            if boot[0] not in _BOOT_JUMPS:
                raise Fat32Error("partition does not start with a boot sector")

        bytes_per_sector = _u16(boot, 11)
        sectors_per_cluster = boot[13]
        if bytes_per_sector == 0 or sectors_per_cluster == 0:
            raise Fat32Error("boot sector holds an invalid geometry")
        number_of_fats = boot[16]
        hidden_sectors = _u32(boot, 28)
        total_sectors = _u32(boot, 32)
        fat_size = _u32(boot, 36)

        self.bytes_per_sector = bytes_per_sector
        self.sectors_per_cluster = sectors_per_cluster
        self.reserved_sectors = _u16(boot, 14)
        self.root_cluster = _u32(boot, 44)
        self.first_data_sector = (
            hidden_sectors + self.reserved_sectors + number_of_fats * fat_size
        )
        data_sectors = total_sectors - self.reserved_sectors - number_of_fats * fat_size
        self.total_clusters = max(data_sectors, 0) // sectors_per_cluster
        self.free_count_valid = self.total_free() <= self.total_clusters

    def first_sector(self, cluster: int) -> int:
        """The first sector of ``cluster``."""
        return (cluster - 2) * self.sectors_per_cluster + self.first_data_sector

    # FAT

    def _fat_position(self, cluster: int) -> tuple[int, int]:
        sector = (self.unused_sectors + self.reserved_sectors
                  + (cluster * 4) // self.bytes_per_sector)
        return sector, (cluster * 4) % self.bytes_per_sector

    def next_cluster(self, cluster: int) -> int:
        """The cluster that follows ``cluster`` in its chain."""
        sector, offset = self._fat_position(cluster)
        data = self.read_sector(sector)
        return _u32(data, offset) & CLUSTER_MASK

    def set_next_cluster(self, cluster: int, value: int) -> None:
        """Record ``value`` as the cluster that follows ``cluster``."""
        sector, offset = self._fat_position(cluster)
        data = self.read_sector(sector)
        data[offset:offset + 4] = (value & 0xFFFFFFFF).to_bytes(4, "little")
        self.write_sector(sector, data)

    def search_free_cluster(self, start: int) -> int:
        """The first free cluster from the FAT sector holding ``start``; 0 if none."""
        start -= start % _FAT_ENTRIES_SCANNED
        for cluster in range(start, self.total_clusters, _FAT_ENTRIES_SCANNED):
            sector = (self.unused_sectors + self.reserved_sectors
                      + (cluster * 4) // self.bytes_per_sector)
            data = self.read_sector(sector)
            for index in range(_FAT_ENTRIES_SCANNED):
                if _u32(data, index * 4) & CLUSTER_MASK == 0:
                    return cluster + index
        return 0

    # FSInfo

    def _fs_info(self) -> tuple[int, bytearray | None]:
        sector = self.unused_sectors + 1
        data = self.read_sector(sector)
        if (_u32(data, 0) != _FS_LEAD_SIGNATURE
                or _u32(data, 484) != _FS_STRUCT_SIGNATURE
                or _u32(data, 508) != _FS_TRAIL_SIGNATURE):
            return sector, None
        return sector, data

    def _get_fs_field(self, offset: int) -> int:
        _, data = self._fs_info()
        return INVALID if data is None else _u32(data, offset)

    def _set_fs_field(self, offset: int, value: int) -> None:
        sector, data = self._fs_info()
        if data is None:
            return
        data[offset:offset + 4] = (value & 0xFFFFFFFF).to_bytes(4, "little")
        self.write_sector(sector, data)

    def total_free(self) -> int:
        """Free cluster count from FSInfo, or INVALID if FSInfo is missing."""
        return self._get_fs_field(488)

    def next_free(self) -> int:
        """Next free cluster hint from FSInfo, or INVALID if FSInfo is missing."""
        return self._get_fs_field(492)

    def set_total_free(self, value: int) -> None:
        """Store the free cluster count in FSInfo."""
        self._set_fs_field(488, value)

    def set_next_free(self, value: int) -> None:
        """Store the next free cluster hint in FSInfo."""
        self._set_fs_field(492, value)

    def update_free_memory(self, add: bool, size: int) -> None:
        """Adjust the free count for a file of ``size`` bytes added or removed."""
        sectors = -(-size // 512)
        clusters = -(-sectors // 8)
        if not self.free_count_valid:
            return
        free = self.total_free()
        free = free + clusters if add else free - clusters
        self.set_total_free(free)