# petdrive

Building blocks for a Commodore PET disk drive replacement: the layout of
1541 D64 disk images, the on-disk structures of a FAT32 volume, access to an
SD card over SPI, and a small HTTP/1.0 client for a file server that serves
files in byte ranges.

The package has no dependencies beyond the standard library.

## Installation

```
pip install petdrive
```

To run the tests:

```
pip install "petdrive[test]"
pytest
```

## Modules

### `petdrive.d64_format`

Geometry and structures of a 35 track D64 image.

- `sectors_per_track(track)` — the sectors the allocator walks on a track
  (21, 19 or 17; 0 for track 0 and tracks past 34).
- `track_offset(track)` and `block_location(track, sector)` — byte offsets of
  blocks within the image file; `D64Error` for a track outside 1–35.
- `cbm_name(raw)` — the name part of a stored or typed name, cut at a zero
  byte, a `0xA0` pad byte or a dot.
- `FileEntry` — a 32 byte directory entry with `from_bytes` / `to_bytes` and a
  `name` property; `FileType` holds the DEL, SEQ, PRG, USR and REL type bytes.
- `Bam` — the 140 byte block availability map with `is_free`, `allocate`,
  `free`, `free_count` and `find_empty_block`, which steps over the directory
  track.

```python
from petdrive.d64_format import Bam, FileEntry, block_location, ENTRY_SIZE

with open("disk.d64", "rb") as f:
    image = f.read()

header = image[block_location(18, 0):][:256]
bam = Bam.from_bytes(header[4:144])
print(bam.find_empty_block(1, 0))

directory = image[block_location(18, 1):][:256]
for i in range(8):
    entry = FileEntry.from_bytes(directory[i * ENTRY_SIZE:(i + 1) * ENTRY_SIZE])
    if entry.file_type:
        print(entry.name, entry.file_size)
```

### `petdrive.sd`

`SpiBus` wraps a byte transfer function (and an optional chip select
callback). `SdCard` drives a card over it: `init()` resets and identifies the
card, `send_command(cmd, arg)` sends one command frame, `read_block(block)`
returns 512 bytes and `write_block(block, data)` writes 512 bytes. Failures
raise `SdError`, whose `code` holds the card's response byte.

### `petdrive.fat32_volume`

`Fat32Volume(device)` works on anything with `read_block` and `write_block`,
such as an `SdCard`. `mount()` reads the boot sector, following the first
partition of a partition table if needed, and raises `Fat32Error` if no FAT32
boot sector is found. It then offers `first_sector(cluster)`,
`next_cluster` / `set_next_cluster`, `search_free_cluster(start)`, the FSInfo
fields through `total_free`, `next_free`, `set_total_free`, `set_next_free`,
and `update_free_memory(add, size)`. `DirEntry` and `LongEntry` encode and
decode 32 byte short and long directory entries.

```python
from petdrive.fat32_volume import Fat32Volume

volume = Fat32Volume(card)   # an initialised SdCard
volume.mount()
cluster = volume.root_cluster
print(volume.first_sector(cluster), volume.next_cluster(cluster))
```

### `petdrive.fat32_names`

- `is_long_filename(name)` — whether a name needs long entries.
- `to_short_filename(name)` — `"GAME.PRG"` becomes `b"GAME    PRG"`.
- `make_short_filename(long_name)` — the alias stored beside a long name,
  six characters followed by `~1PRG`.
- `lfn_checksum(short_name)` — checksum of an 11 byte short name.
- `chars_to_compare(name, max_chars)` — length of the prefix before a `*`.
- `fat_date(year, month, day)` and `fat_time(hour, minute, second)` — packed
  16 bit timestamp fields.

### `petdrive.connection`

`Connection` sends one request to a TCP server and returns the whole reply.
`start_client(host, port)` selects the server, resolving the name unless
`is_ip(host)` is true; `send_data(data)` returns the bytes received. Network
failures raise `ConnectionError`.

### `petdrive.http_client`

`HttpClient(connection)` speaks HTTP/1.0 to the file server through any object
with `start_client` and `send_data`:

- `make_request(host, port, url, params)` — GET, returning the body or `None`.
- `get_size(host, port, url)` — the file size the server reports, or 0.
- `get_range(host, port, url, start, end)` — the body of a range request.
- `post_block(host, port, url, params, data)` — PUT of base64 encoded data.

`extract_payload(response)` returns the body of a raw response, or `None` if
it has no complete header.

```python
from petdrive.connection import Connection
from petdrive.http_client import HttpClient

client = HttpClient(Connection(timeout=5))
url = "/files.php?file=GAME.PRG"
size = client.get_size("files.example.com", 80, url)
first = client.get_range("files.example.com", 80, url, 0, min(size, 512))
```

### `petdrive.encoding`

`base64_len(length)` and `base64_encode(data)` for block uploads.

## What this package does not do

There is no single file interface over these back ends: nothing here opens a
named file inside a D64 image or on a FAT32 volume and streams it block by
block, writes a new file with its directory entry, or lists a directory as
names. Likewise nothing fetches or stores whole files on the file server or
keeps its host and path settings. The package supplies the formats,
allocation tables and transports such components are built from. It has no
command-line tool and does not talk to an IEEE-488 bus.