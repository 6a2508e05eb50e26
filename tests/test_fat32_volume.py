import pytest

from petdrive.fat32_volume import (
    ATTR_ARCHIVE,
    ATTR_LONG_NAME,
    FAT_EOF,
    INVALID,
    DirEntry,
    Fat32Error,
    Fat32Volume,
    LongEntry,
)
from petdrive.sd import SdError

RESERVED = 32
FAT_SIZE = 1
DATA_CLUSTERS = 100


class MemoryDevice:
    def __init__(self):
        self.sectors = {}

    def read_block(self, block):
        return bytes(self.sectors.get(block, bytes(512)))

    def write_block(self, block, data):
        assert len(data) == 512
        self.sectors[block] = bytes(data)


class BrokenDevice:
    def read_block(self, block):
        raise SdError(1)

    def write_block(self, block, data):
        raise SdError(1)


def _boot_sector(hidden=0):
    boot = bytearray(512)
    boot[0] = 0xEB
    boot[11:13] = (512).to_bytes(2, "little")
    boot[13] = 1
    boot[14:16] = RESERVED.to_bytes(2, "little")
    boot[16] = 2
    boot[28:32] = hidden.to_bytes(4, "little")
    total = RESERVED + 2 * FAT_SIZE + DATA_CLUSTERS
    boot[32:36] = total.to_bytes(4, "little")
    boot[36:40] = FAT_SIZE.to_bytes(4, "little")
    boot[44:48] = (2).to_bytes(4, "little")
    boot[510:512] = b"\x55\xAA"
    return bytes(boot)


def _fs_info(free, next_free):
    info = bytearray(512)
    info[0:4] = (0x41615252).to_bytes(4, "little")
    info[484:488] = (0x61417272).to_bytes(4, "little")
    info[488:492] = free.to_bytes(4, "little")
    info[492:496] = next_free.to_bytes(4, "little")
    info[508:512] = (0xAA550000).to_bytes(4, "little")
    return bytes(info)


def make_volume(free=50, next_free=3, base=0):
    device = MemoryDevice()
    if base:
        mbr = bytearray(512)
        mbr[446 + 8:446 + 12] = base.to_bytes(4, "little")
        mbr[510:512] = b"\x55\xAA"
        device.sectors[0] = bytes(mbr)
    device.sectors[base] = _boot_sector(hidden=base)
    device.sectors[base + 1] = _fs_info(free, next_free)
    volume = Fat32Volume(device)
    volume.mount()
    return volume, device


def test_mount_reads_geometry():
    volume, _ = make_volume()
    assert volume.bytes_per_sector == 512
    assert volume.sectors_per_cluster == 1
    assert volume.root_cluster == 2
    assert volume.reserved_sectors == RESERVED
    assert volume.total_clusters == DATA_CLUSTERS
    assert volume.first_data_sector == RESERVED + 2 * FAT_SIZE
    assert volume.free_count_valid is True


def test_mount_through_partition_table():
    volume, _ = make_volume(base=8)
    assert volume.unused_sectors == 8
    assert volume.first_data_sector == 8 + RESERVED + 2 * FAT_SIZE
    assert volume.total_free() == 50


def test_mount_rejects_blank_card():
    volume = Fat32Volume(MemoryDevice())
    with pytest.raises(Fat32Error):
        volume.mount()


def test_mount_rejects_partition_without_boot_sector():
    device = MemoryDevice()
    mbr = bytearray(512)
    mbr[446 + 8:446 + 12] = (8).to_bytes(4, "little")
    mbr[510:512] = b"\x55\xAA"
    device.sectors[0] = bytes(mbr)
    with pytest.raises(Fat32Error):
        Fat32Volume(device).mount()


def test_first_sector_of_clusters():
    volume, _ = make_volume()
    assert volume.first_sector(2) == volume.first_data_sector
    assert volume.first_sector(3) == volume.first_data_sector + volume.sectors_per_cluster


def test_next_cluster_masks_top_bits():
    volume, _ = make_volume()
    volume.set_next_cluster(7, 0xF0000009)
    assert volume.next_cluster(7) == 9


def test_read_failure_raises():
    volume = Fat32Volume(BrokenDevice())
    with pytest.raises(Fat32Error):
        volume.next_cluster(2)


def test_fs_info_round_trip():
    volume, _ = make_volume(free=50, next_free=3)
    assert volume.total_free() == 50
    assert volume.next_free() == 3
    volume.set_total_free(40)
    volume.set_next_free(12)
    assert volume.total_free() == 40
    assert volume.next_free() == 12


def test_missing_fs_info_is_invalid():
    device = MemoryDevice()
    device.sectors[0] = _boot_sector()
    volume = Fat32Volume(device)
    volume.mount()
    assert volume.total_free() == INVALID
    assert volume.next_free() == INVALID
    assert volume.free_count_valid is False
    volume.set_total_free(10)
    assert volume.total_free() == INVALID


def test_search_free_cluster_skips_used():
    volume, _ = make_volume()
    for cluster in range(3):
        volume.set_next_cluster(cluster, FAT_EOF)
    assert volume.search_free_cluster(0) == 3
    assert volume.search_free_cluster(2) == 3


def test_search_free_cluster_none_left():
    volume, _ = make_volume()
    for cluster in range(128):
        volume.set_next_cluster(cluster, FAT_EOF)
    assert volume.search_free_cluster(0) == 0


def test_update_free_memory_add_then_remove():
    volume, _ = make_volume(free=50)
    volume.update_free_memory(True, 4096)
    after_add = volume.total_free()
    assert after_add > 50
    volume.update_free_memory(False, 4096)
    assert volume.total_free() == 50


def test_update_free_memory_rounds_up_to_clusters():
    volume, _ = make_volume(free=50)
    volume.update_free_memory(False, 4096)
    one_cluster = 50 - volume.total_free()
    volume.set_total_free(50)
    volume.update_free_memory(False, 4097)
    assert 50 - volume.total_free() == 2 * one_cluster


def test_update_free_memory_ignored_when_count_invalid():
    volume, _ = make_volume(free=500)
    assert volume.free_count_valid is False
    volume.update_free_memory(False, 4096)
    assert volume.total_free() == 500


def test_dir_entry_round_trip():
    entry = DirEntry(name=b"HELLO   PRG", attrib=ATTR_ARCHIVE, file_size=1234)
    entry.first_cluster = 0x12345
    data = entry.to_bytes()
    assert len(data) == 32
    assert data[:11] == b"HELLO   PRG"
    decoded = DirEntry.from_bytes(data)
    assert decoded == entry
    assert decoded.first_cluster == 0x12345
    assert decoded.first_cluster_hi == 0x1


def test_dir_entry_pads_name():
    entry = DirEntry(name=b"AB")
    assert entry.name == b"AB" + b" " * 9


def test_dir_entry_wrong_length():
    with pytest.raises(Fat32Error):
        DirEntry.from_bytes(bytes(31))


def test_long_entry_round_trip():
    entry = LongEntry(
        ord=0x41,
        name1=tuple(b"hello"),
        checksum=0x5A,
        name2=tuple(b" world"),
        name3=(ord("!"), 0),
    )
    data = entry.to_bytes()
    assert len(data) == 32
    assert data[11] == ATTR_LONG_NAME
    decoded = LongEntry.from_bytes(data)
    assert decoded == entry
    assert bytes(decoded.chars[:12]) == b"hello world!"


def test_long_entry_wrong_sizes():
    with pytest.raises(Fat32Error):
        LongEntry(name1=(1, 2))
    with pytest.raises(Fat32Error):
        LongEntry.from_bytes(bytes(33))