"""D64 image layout, FAT32 volume structures, SD card access over SPI and an HTTP file server client for a PET disk drive."""

__version__ = "0.1.0"

__all__ = [
    "connection",
    "d64_format",
    "encoding",
    "fat32_names",
    "fat32_volume",
    "http_client",
    "sd",
]