"""SD and SDHC card access in SPI mode."""

from __future__ import annotations

from collections.abc import Callable
from enum import IntEnum

BLOCK_SIZE = 512
START_BLOCK_TOKEN = 0xFE
_IDLE = 0xFF


class Command(IntEnum):
    """SD card commands."""

    GO_IDLE_STATE = 0
    SEND_OP_COND = 1
    SEND_IF_COND = 8
    SEND_CSD = 9
    STOP_TRANSMISSION = 12
    SEND_STATUS = 13
    SET_BLOCK_LEN = 16
    READ_SINGLE_BLOCK = 17
    READ_MULTIPLE_BLOCKS = 18
    WRITE_SINGLE_BLOCK = 24
    WRITE_MULTIPLE_BLOCKS = 25
    ERASE_BLOCK_START_ADDR = 32
    ERASE_BLOCK_END_ADDR = 33
    ERASE_SELECTED_BLOCKS = 38
    SD_SEND_OP_COND = 41
    APP_CMD = 55
    READ_OCR = 58
    CRC_ON_OFF = 59


_BYTE_ADDRESSED = frozenset({
    Command.READ_SINGLE_BLOCK,
    Command.READ_MULTIPLE_BLOCKS,
    Command.WRITE_SINGLE_BLOCK,
    Command.WRITE_MULTIPLE_BLOCKS,
    Command.ERASE_BLOCK_START_ADDR,
    Command.ERASE_BLOCK_END_ADDR,
})

_CRC = {
    Command.SEND_IF_COND: 0x87,
    Command.APP_CMD: 0x65,
    Command.SD_SEND_OP_COND: 0x77,
}
_DEFAULT_CRC = 0x95


class SdError(Exception):
    """The card failed or answered a command with an error."""

    def __init__(self, code: int, message: str | None = None):
        super().__init__(message or f"SD card error 0x{code:02X}")
        self.code = code


class SpiBus:
    """An SPI bus given as a byte transfer function and a chip select."""

    def __init__(self, transfer: Callable[[int], int],
                 chip_select: Callable[[bool], None] | None = None):
        self._transfer = transfer
        self._chip_select = chip_select

    def transmit(self, data: int) -> int:
        """Clock one byte out and return the byte clocked in."""
        return self._transfer(data & 0xFF) & 0xFF

    def receive(self) -> int:
        """Clock in one byte while sending idle bits."""
        return self.transmit(_IDLE)

    def cs_select(self) -> None:
        if self._chip_select is not None:
            self._chip_select(True)

    def cs_unselect(self) -> None:
        if self._chip_select is not None:
            self._chip_select(False)


class SdCard:
    """A memory card on an SPI bus, read and written in 512 byte blocks."""

    def __init__(self, spi: SpiBus, cs: int = 0):
        self.spi = spi
        self.cs = cs
        self.sdhc = False
        self.card_type = 0

    def init(self) -> None:
        """Reset the card into SPI mode and identify it.

        Raises SdError if the card does not answer or fails to start.
        """
        spi = self.spi
        spi.cs_unselect()
        for _ in range(10):
            spi.transmit(_IDLE)
        spi.cs_select()

        for attempt in range(1, 0x22):
            response = self.send_command(Command.GO_IDLE_STATE, 0)
            if attempt > 0x20:
                raise SdError(1, "card not detected")
            if response == 0x01:
                break

        spi.cs_unselect()
        spi.transmit(_IDLE)
        spi.transmit(_IDLE)

        for attempt in range(1, 0x100):
            response = self.send_command(Command.SEND_IF_COND, 0x000001AA)
            if attempt > 0xFE:
                self.card_type = 1
                raise SdError(3, "card did not answer the interface condition")
            if response == 0x01:
                break

        failures = 0
        while True:
            self.send_command(Command.APP_CMD, 0)
            response = self.send_command(Command.SD_SEND_OP_COND, 0x40000000)
            if response == 0x00:
                break
            failures += 1
            if failures > 0xFE:
                raise SdError(response, "card initialization timed out")

        self.sdhc = False
        for _ in range(0xFF):
            if self.send_command(Command.READ_OCR, 0) == 0x00:
                break
        self.card_type = 2 if self.sdhc else 3

    def send_command(self, cmd: int, arg: int) -> int:
        """Send one command frame and return the card's response byte."""
        spi = self.spi
        cmd = int(cmd)
        arg &= 0xFFFFFFFF
        if not self.sdhc and cmd in _BYTE_ADDRESSED:
            arg = (arg << 9) & 0xFFFFFFFF

        spi.cs_select()
        spi.transmit(cmd | 0x40)
        for byte in arg.to_bytes(4, "big"):
            spi.transmit(byte)
        spi.transmit(_CRC.get(cmd, _DEFAULT_CRC))

        response = _IDLE
        for _ in range(0x100):
            response = spi.receive()
            if response != _IDLE:
                break

        if response == 0x00 and cmd == Command.READ_OCR:
            self.sdhc = bool(spi.receive() & 0x40)
            for _ in range(3):
                spi.receive()
        elif cmd == Command.SEND_IF_COND:
            for _ in range(4):
                spi.receive()

        spi.receive()
        spi.cs_unselect()
        return response

    def read_block(self, block: int) -> bytes:
        """Read one 512 byte block."""
        spi = self.spi
        response = self.send_command(Command.READ_SINGLE_BLOCK, block)
        if response != 0x00:
            raise SdError(response, f"read of block {block} refused")

        spi.cs_select()
        for _ in range(0x10000):
            if spi.receive() == START_BLOCK_TOKEN:
                break
        else:
            spi.cs_unselect()
            raise SdError(1, f"read of block {block} timed out")

        data = bytes(spi.receive() for _ in range(BLOCK_SIZE))
        spi.receive()
        spi.receive()
        spi.receive()
        spi.cs_unselect()
        return data

    def write_block(self, block: int, data: bytes | bytearray | memoryview) -> None:
        """Write one 512 byte block."""
        data = bytes(data)
        if len(data) != BLOCK_SIZE:
            raise ValueError(f"a block holds {BLOCK_SIZE} bytes, got {len(data)}")

        spi = self.spi
        response = self.send_command(Command.WRITE_SINGLE_BLOCK, block)
        if response != 0x00:
            raise SdError(response, f"write of block {block} refused")

        spi.cs_select()
        spi.transmit(START_BLOCK_TOKEN)
        for byte in data:
            spi.transmit(byte)
        spi.transmit(_IDLE)
        spi.transmit(_IDLE)

        response = spi.receive()
        if (response & 0x1F) != 0x05:
            spi.cs_unselect()
            raise SdError(response, f"write of block {block} rejected")

        retry = self._wait_while_busy(0)
        spi.cs_unselect()
        spi.transmit(_IDLE)
        spi.cs_select()
        self._wait_while_busy(retry)
        spi.cs_unselect()

    def _wait_while_busy(self, retry: int) -> int:
        while not self.spi.receive():
            if retry > 0xFFFE:
                self.spi.cs_unselect()
                raise SdError(1, "write timed out")
            retry += 1
        return retry