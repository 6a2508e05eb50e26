import pytest

from petdrive.d64_format import (
    BAM_SIZE,
    BLOCK_SIZE,
    ENTRY_SIZE,
    MAX_TRACKS,
    NAME_PAD,
    Bam,
    D64Error,
    FileEntry,
    FileType,
    block_location,
    cbm_name,
    sectors_per_track,
    track_offset,
)


def _fresh_bam() -> Bam:
    data = bytearray()
    for track in range(1, MAX_TRACKS + 1):
        data += bytes([sectors_per_track(track), 0xFF, 0xFF, 0xFF])
    return Bam.from_bytes(data)


@pytest.mark.parametrize(
    "track, expected",
    [(0, 0), (1, 21), (17, 21), (18, 19), (24, 19), (25, 17), (30, 17),
     (34, 17), (35, 0)],
)
def test_sectors_per_track(track, expected):
    assert sectors_per_track(track) == expected


def test_first_track_starts_image():
    assert track_offset(1) == 0
    assert block_location(1, 1) == BLOCK_SIZE


def test_header_block_location():
    assert block_location(18, 0) == 0x16500


def test_image_size_of_35_tracks():
    assert block_location(35, 16) + BLOCK_SIZE == 174848


def test_track_offsets_increase():
    offsets = [track_offset(t) for t in range(1, MAX_TRACKS + 1)]
    assert offsets == sorted(offsets)
    assert len(set(offsets)) == MAX_TRACKS


@pytest.mark.parametrize("track", [0, 36])
def test_track_offset_out_of_range(track):
    with pytest.raises(D64Error):
        track_offset(track)


@pytest.mark.parametrize(
    "raw, expected",
    [
        (b"HELLO" + bytes([NAME_PAD]) * 11, b"HELLO"),
        (b"GAME.PRG", b"GAME"),
        (b"ABC\x00DEF", b"ABC"),
        (b"", b""),
    ],
)
def test_cbm_name(raw, expected):
    assert cbm_name(raw) == expected


def test_cbm_name_limits_length():
    assert cbm_name(b"X" * 30) == b"X" * 17


def test_file_entry_round_trip():
    entry = FileEntry(
        next_block=(18, 4),
        file_type=FileType.PRG,
        data_block=(17, 0),
        file_name=b"DEMO",
        file_size=300,
    )
    data = entry.to_bytes()
    assert len(data) == ENTRY_SIZE
    decoded = FileEntry.from_bytes(data)
    assert decoded == entry
    assert decoded.name == b"DEMO"
    assert decoded.file_size == 300


def test_file_entry_wire_layout():
    entry = FileEntry(file_type=FileType.SEQ, data_block=(17, 0),
                      file_name=b"A", file_size=0x0102)
    data = entry.to_bytes()
    assert data[2] == 0x81
    assert data[3:5] == bytes([17, 0])
    assert data[5] == ord("A")
    assert data[6:21] == bytes([NAME_PAD]) * 15
    assert data[30:32] == bytes([0x02, 0x01])


def test_file_entry_wrong_length():
    with pytest.raises(D64Error):
        FileEntry.from_bytes(bytes(31))


def test_file_entry_name_too_long():
    with pytest.raises(D64Error):
        FileEntry(file_name=b"N" * 17)


def test_bam_round_trip():
    bam = _fresh_bam()
    assert len(bam.to_bytes()) == BAM_SIZE
    assert Bam.from_bytes(bam.to_bytes()).to_bytes() == bam.to_bytes()


def test_bam_wrong_length():
    with pytest.raises(D64Error):
        Bam.from_bytes(bytes(10))


def test_allocate_and_free_low_sector():
    bam = _fresh_bam()
    before = bam.free_count(1)
    assert bam.is_free(1, 3)
    bam.allocate(1, 3)
    assert not bam.is_free(1, 3)
    assert bam.is_free(1, 2)
    assert bam.free_count(1) == before - 1
    bam.free(1, 3)
    assert bam.is_free(1, 3)
    assert bam.free_count(1) == before


def test_high_sectors_read_as_used():
    bam = _fresh_bam()
    assert not bam.is_free(1, 8)
    assert not bam.is_free(1, 20)


def test_allocate_needs_free_count():
    data = bytearray(_fresh_bam().to_bytes())
    data[0] = 0
    bam = Bam.from_bytes(data)
    bam.allocate(1, 0)
    assert bam.is_free(1, 0)
    assert bam.free_count(1) == 0


def test_find_empty_block_from_start():
    assert _fresh_bam().find_empty_block(1, 0) == (1, 0)


def test_find_empty_block_skips_directory_track():
    assert _fresh_bam().find_empty_block(17, 20) == (19, 0)


def test_find_empty_block_after_allocation():
    bam = _fresh_bam()
    bam.allocate(1, 0)
    assert bam.find_empty_block(1, 0) == (1, 1)


def test_find_empty_block_full_disk():
    assert Bam().find_empty_block(1, 0) is None


@pytest.mark.parametrize("track, sector", [(0, 0), (36, 0), (1, 24)])
def test_bam_out_of_range(track, sector):
    with pytest.raises(D64Error):
        _fresh_bam().is_free(track, sector)