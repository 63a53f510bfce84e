"""
iDotMatrix 32x32 LED panel BLE protocol.

Commands are encoded into short little-endian frames; PNG and GIF uploads are
split into 4096-byte blocks, each with its own header. The resulting frame is
then cut into 20-byte fragments for the BLE write characteristic.
"""

import re
import zlib
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum

# BLE characteristics
WRITE_CHAR_UUID = "0000fa02-0000-1000-8000-00805f9b34fb"
READ_CHAR_UUID = "0000fa03-0000-1000-8000-00805f9b34fb"

# Advertised names look like "IDM-1A2B3C"
DEVICE_NAME_FILTER = "IDM"

DISPLAY_SIZE = 32

# Max bytes per single GATT write
BLE_MTU = 20

# Asset uploads are split into blocks of this many payload bytes
ASSET_BLOCK_SIZE = 4096

# Header size of an animated-image block (length..05 00 0D)
GIF_BLOCK_HEADER_SIZE = 16

PNG_FLAGS_FIRST = bytes([0x00, 0x00, 0x00])
PNG_FLAGS_CONTINUATION = bytes([0x00, 0x00, 0x02])
GIF_FLAGS_FIRST = bytes([0x01, 0x00, 0x00])
GIF_FLAGS_CONTINUATION = bytes([0x01, 0x00, 0x02])
GIF_BLOCK_TRAILER = bytes([0x05, 0x00, 0x0D])

# Countdown actions
COUNTDOWN_CANCEL = 0x00
COUNTDOWN_START = 0x01
COUNTDOWN_PAUSE = 0x02
COUNTDOWN_RESUME = 0x03


@dataclass(frozen=True)
class Color:
    r: int
    g: int
    b: int


@dataclass(frozen=True)
class Pixel:
    """One cell of the panel. Coordinates are not bounds-checked."""

    x: int
    y: int
    color: Color


@dataclass(frozen=True)
class SetPixel:
    pixel: Pixel


@dataclass(frozen=True)
class ImageMode:
    mode: int


@dataclass(frozen=True)
class UploadStillImage:
    """Raw PNG bytes, already sized for the panel."""

    data: bytes


@dataclass(frozen=True)
class UploadAnimatedImage:
    """Raw GIF bytes, already sized for the panel."""

    data: bytes


@dataclass(frozen=True)
class FullScreenColor:
    color: Color


@dataclass(frozen=True)
class ScreenBrightness:
    percent: int


@dataclass(frozen=True)
class ScreenOn:
    pass


@dataclass(frozen=True)
class ScreenOff:
    pass


@dataclass(frozen=True)
class CountdownStart:
    duration: timedelta


@dataclass(frozen=True)
class CountdownCancel:
    pass


@dataclass(frozen=True)
class CountdownPause:
    pass


@dataclass(frozen=True)
class CountdownResume:
    pass


Command = (
    SetPixel
    | ImageMode
    | UploadStillImage
    | UploadAnimatedImage
    | FullScreenColor
    | ScreenBrightness
    | ScreenOn
    | ScreenOff
    | CountdownStart
    | CountdownCancel
    | CountdownPause
    | CountdownResume
)


class WriteMode(Enum):
    """How the transport should write the fragments of one frame."""

    ACKNOWLEDGED = "acknowledged"
    UNACKNOWLEDGED = "unacknowledged"


@dataclass(frozen=True)
class FragmentedFrame:
    fragments: list[bytes]
    write_mode: WriteMode


def parse_color(color: str) -> Color:
    """Parse hex color string (#rrggbb, rrggbb, #rgb, 0xrrggbb)."""
    raw = color.strip().lower()
    if raw.startswith("#"):
        raw = raw[1:]
    if raw.startswith("0x"):
        raw = raw[2:]
    if len(raw) == 3:
        raw = "".join([c * 2 for c in raw])
    if len(raw) != 6 or not re.fullmatch(r"[0-9a-f]{6}", raw):
        raise ValueError(f"Invalid color '{color}'. Use hex like #ff0000.")
    return Color(int(raw[0:2], 16), int(raw[2:4], 16), int(raw[4:6], 16))


def parse_pixel(pixel: str) -> Pixel:
    """Parse a pixel in the form ``x,y,#rrggbb``."""
    parts = [p.strip() for p in pixel.split(",")]
    if len(parts) != 3:
        raise ValueError(f"Invalid pixel '{pixel}'. Use x,y,#rrggbb.")
    try:
        x = int(parts[0])
        y = int(parts[1])
    except ValueError:
        raise ValueError(f"Invalid pixel coordinates in '{pixel}'.") from None
    if not (0 <= x <= 255 and 0 <= y <= 255):
        raise ValueError(f"Pixel coordinates must be 0-255, got {x},{y}.")
    return Pixel(x, y, parse_color(parts[2]))


def _split_blocks(data: bytes, block_size: int = ASSET_BLOCK_SIZE) -> list[bytes]:
    return [data[i : i + block_size] for i in range(0, len(data), block_size)]


def build_png_payload(png_data: bytes | bytearray) -> bytearray:
    """
    Build the upload frame for a still image.

    Each block is prefixed with a 9-byte header:
    - 2 bytes: input length + block count (LE). The device expects this exact
      value, it is not the size of the block.
    - 3 bytes: flags, third byte is 0x02 on continuation blocks.
    - 4 bytes: input length (LE).

    Empty input yields an empty frame.
    """
    blocks = _split_blocks(bytes(png_data))
    total = len(png_data)
    length_field = (total + len(blocks)) & 0xFFFF

    payload = bytearray()
    for i, block in enumerate(blocks):
        payload += length_field.to_bytes(2, byteorder="little")
        payload += PNG_FLAGS_CONTINUATION if i > 0 else PNG_FLAGS_FIRST
        payload += (total & 0xFFFFFFFF).to_bytes(4, byteorder="little")
        payload += block
    return payload


def build_gif_payload(gif_data: bytes | bytearray) -> bytearray:
    """
    Build the upload frame for an animated image.

    Each block is prefixed with a 16-byte header:
    - 2 bytes: block length + 16 (LE).
    - 3 bytes: flags, third byte is 0x02 on continuation blocks.
    - 4 bytes: input length + 16 (LE).
    - 4 bytes: CRC-32 of the whole input (LE), repeated in every block.
    - 3 bytes: 05 00 0D.

    Empty input yields an empty frame.
    """
    data = bytes(gif_data)
    crc = zlib.crc32(data) & 0xFFFFFFFF
    total = (len(data) + GIF_BLOCK_HEADER_SIZE) & 0xFFFFFFFF

    payload = bytearray()
    for i, block in enumerate(_split_blocks(data)):
        block_length = (len(block) + GIF_BLOCK_HEADER_SIZE) & 0xFFFF
        payload += block_length.to_bytes(2, byteorder="little")
        payload += GIF_FLAGS_CONTINUATION if i > 0 else GIF_FLAGS_FIRST
        payload += total.to_bytes(4, byteorder="little")
        payload += crc.to_bytes(4, byteorder="little")
        payload += GIF_BLOCK_TRAILER
        payload += block
    return payload


def _build_countdown_command(
    action: int, minutes: int = 0, seconds: int = 0
) -> bytearray:
    return bytearray([0x07, 0x00, 0x08, 0x80, action, minutes, seconds])


def build_countdown_start(duration: timedelta) -> bytearray:
    """Countdown start; minutes wrap at 256 since the field is one byte."""
    total_seconds = int(duration.total_seconds())
    minutes = (total_seconds // 60) & 0xFF
    seconds = total_seconds % 60
    return _build_countdown_command(COUNTDOWN_START, minutes, seconds)


def encode_command(command: Command) -> bytearray:
    """Encode a command into its wire frame."""
    if isinstance(command, SetPixel):
        pixel = command.pixel
        color = pixel.color
        return bytearray(
            [
                0x0A,
                0x00,
                0x05,
                0x01,
                0x00,
                color.r,
                color.g,
                color.b,
                pixel.x,
                pixel.y,
            ]
        )
    if isinstance(command, ImageMode):
        return bytearray([0x05, 0x00, 0x04, 0x01, command.mode])
    if isinstance(command, UploadStillImage):
        return build_png_payload(command.data)
    if isinstance(command, UploadAnimatedImage):
        return build_gif_payload(command.data)
    if isinstance(command, FullScreenColor):
        color = command.color
        return bytearray([0x07, 0x00, 0x02, 0x02, color.r, color.g, color.b])
    if isinstance(command, ScreenBrightness):
        return bytearray([0x05, 0x00, 0x04, 0x80, command.percent])
    if isinstance(command, ScreenOn):
        return bytearray([0x05, 0x00, 0x07, 0x01, 0x01])
    if isinstance(command, ScreenOff):
        return bytearray([0x05, 0x00, 0x07, 0x01, 0x00])
    if isinstance(command, CountdownStart):
        return build_countdown_start(command.duration)
    if isinstance(command, CountdownCancel):
        return _build_countdown_command(COUNTDOWN_CANCEL)
    if isinstance(command, CountdownPause):
        return _build_countdown_command(COUNTDOWN_PAUSE)
    if isinstance(command, CountdownResume):
        return _build_countdown_command(COUNTDOWN_RESUME)
    raise TypeError(f"Unknown command: {command!r}")


def fragment_frame(frame: bytes | bytearray, mtu: int = BLE_MTU) -> FragmentedFrame:
    """
    Split a frame into MTU-sized fragments and pick the write mode.

    A single fragment is written with response; anything longer goes out
    without response so the device is not round-tripped per fragment.
    """
    data = bytes(frame)
    fragments = [data[i : i + mtu] for i in range(0, len(data), mtu)]
    if len(fragments) > 1:
        write_mode = WriteMode.UNACKNOWLEDGED
    else:
        write_mode = WriteMode.ACKNOWLEDGED
    return FragmentedFrame(fragments=fragments, write_mode=write_mode)
