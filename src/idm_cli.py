"""
CLI to control an iDotMatrix LED panel.

Every requested command is sent over a single connection, in option order.

Usage:
    uv run python -m src.idm_cli --screen-on --full-screen-color "#ff0000"
    uv run python -m src.idm_cli --upload-gif demo_32.gif
"""

import asyncio
import colorsys
import io
import time
from datetime import timedelta
from pathlib import Path

import click
from loguru import logger as log
from PIL import Image, UnidentifiedImageError

from src.idm_client import SCAN_TIMEOUT, WRITE_DELAY, IdmClient, discover_device
from src.idm_protocol import (
    DEVICE_NAME_FILTER,
    DISPLAY_SIZE,
    Color,
    Command,
    CountdownCancel,
    CountdownPause,
    CountdownResume,
    CountdownStart,
    FullScreenColor,
    ImageMode,
    Pixel,
    ScreenBrightness,
    ScreenOff,
    ScreenOn,
    SetPixel,
    UploadAnimatedImage,
    UploadStillImage,
    parse_color,
    parse_pixel,
)
from src.utils.logging_config import setup_logging

# Hue sweep demo, degrees
HUE_START = 180.0
HUE_STEP = 0.2


class ColorParamType(click.ParamType):
    name = "color"

    def convert(self, value, param, ctx):
        if isinstance(value, Color):
            return value
        try:
            return parse_color(value)
        except ValueError as e:
            self.fail(str(e), param, ctx)


class PixelParamType(click.ParamType):
    name = "pixel"

    def convert(self, value, param, ctx):
        if isinstance(value, Pixel):
            return value
        try:
            return parse_pixel(value)
        except ValueError as e:
            self.fail(str(e), param, ctx)


COLOR = ColorParamType()
PIXEL = PixelParamType()


def _read_asset(path: Path, expected_format: str) -> bytes:
    """Read an image file as-is, warning when it does not suit the panel."""
    data = path.read_bytes()
    try:
        with Image.open(io.BytesIO(data)) as img:
            image_format, size = img.format, img.size
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
        log.warning("Could not inspect {} ({}), sending it unchanged", path.name, e)
        return data

    if image_format != expected_format:
        log.warning("{} is {}, expected {}", path.name, image_format, expected_format)
    if size != (DISPLAY_SIZE, DISPLAY_SIZE):
        log.warning(
            "{} is {}x{}, panel is {}x{}",
            path.name,
            size[0],
            size[1],
            DISPLAY_SIZE,
            DISPLAY_SIZE,
        )
    log.info("Loaded {} ({} bytes)", path.name, len(data))
    return data


def _build_commands(
    *,
    screen_on: bool = False,
    screen_off: bool = False,
    set_pixel: Pixel | None = None,
    image_mode: int | None = None,
    upload_png: Path | None = None,
    upload_gif: Path | None = None,
    full_screen_color: Color | None = None,
    screen_brightness: int | None = None,
    countdown_start: int | None = None,
    countdown_cancel: bool = False,
    countdown_pause: bool = False,
    countdown_resume: bool = False,
) -> list[Command]:
    """Turn CLI options into commands, in the order they are sent."""
    commands: list[Command] = []

    if screen_on:
        commands.append(ScreenOn())
    if screen_off:
        commands.append(ScreenOff())
    if set_pixel is not None:
        commands.append(SetPixel(set_pixel))
    if image_mode is not None:
        commands.append(ImageMode(image_mode))
    if upload_png is not None:
        commands.append(UploadStillImage(_read_asset(upload_png, "PNG")))
    if upload_gif is not None:
        commands.append(UploadAnimatedImage(_read_asset(upload_gif, "GIF")))
    if full_screen_color is not None:
        commands.append(FullScreenColor(full_screen_color))
    if screen_brightness is not None:
        commands.append(ScreenBrightness(screen_brightness))
    if countdown_start is not None:
        commands.append(CountdownStart(timedelta(seconds=countdown_start)))
    if countdown_cancel:
        commands.append(CountdownCancel())
    if countdown_pause:
        commands.append(CountdownPause())
    if countdown_resume:
        commands.append(CountdownResume())

    return commands


def _hue_to_color(hue: float) -> Color:
    """Full saturation, half lightness color for a hue in degrees."""
    r, g, b = colorsys.hls_to_rgb(hue / 360.0, 0.5, 1.0)
    return Color(int(r * 255), int(g * 255), int(b * 255))


def hue_sweep(
    hue: float = HUE_START, step: float = HUE_STEP
) -> tuple[list[SetPixel], float]:
    """
    Build one pass over the panel, row by row, advancing the hue per pixel.

    Returns the pixel commands and the hue to continue from.
    """
    commands: list[SetPixel] = []
    for y in range(DISPLAY_SIZE):
        for x in range(DISPLAY_SIZE):
            commands.append(SetPixel(Pixel(x, y, _hue_to_color(hue))))
            hue = (hue + step) % 360.0
    return commands, hue


async def _color_hue(client: IdmClient) -> None:
    """Cycle colors across the panel until interrupted."""
    hue = HUE_START
    last_loop = time.monotonic()
    while True:
        commands, hue = hue_sweep(hue)
        for command in commands:
            await client.send_command(command)

        now = time.monotonic()
        log.info("Loop duration: {:.2f}s", now - last_loop)
        last_loop = now


async def _run(
    commands: list[Command],
    *,
    device_name: str | None,
    device_address: str | None,
    timeout: float,
    delay: float,
    color_hue: bool,
) -> None:
    """Connect to the panel and send the commands."""
    address = device_address

    if not address:
        address = await discover_device(name=device_name, timeout=timeout)
        if address is None:
            raise click.ClickException("Device not found. Use --name or --address.")

    async with IdmClient(address, delay=delay) as client:
        for command in commands:
            fragments = await client.send_command(command)
            log.info("Sent {} ({} fragment(s))", type(command).__name__, fragments)
        if color_hue:
            await _color_hue(client)


@click.command()
@click.option("--screen-on", is_flag=True, help="Turn the screen on")
@click.option("--screen-off", is_flag=True, help="Turn the screen off")
@click.option(
    "--set-pixel",
    type=PIXEL,
    default=None,
    help="Pixel in format x,y,#ffffff",
)
@click.option(
    "--image-mode",
    type=click.IntRange(0, 255),
    default=None,
    help="Image mode byte (1 = DIY drawing)",
)
@click.option(
    "--upload-png",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to a 32x32 PNG file",
)
@click.option(
    "--upload-gif",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to a 32x32 GIF file",
)
@click.option(
    "--full-screen-color",
    type=COLOR,
    default=None,
    help="Color in hex format, e.g. #ffffff",
)
@click.option(
    "--screen-brightness",
    type=click.IntRange(0, 100),
    default=None,
    help="Brightness in percent, e.g. 100",
)
@click.option(
    "--countdown-start",
    type=click.IntRange(min=0),
    default=None,
    help="Countdown in seconds",
)
@click.option("--countdown-cancel", is_flag=True, help="Cancel the countdown")
@click.option("--countdown-pause", is_flag=True, help="Pause the countdown")
@click.option("--countdown-resume", is_flag=True, help="Resume the countdown")
@click.option(
    "--color-hue",
    is_flag=True,
    help="Continuously change color demo (Ctrl+C to stop)",
)
@click.option(
    "--name",
    "-n",
    "device_name",
    default=DEVICE_NAME_FILTER,
    show_default=True,
    help="Device name substring",
)
@click.option(
    "--address",
    "-a",
    "device_address",
    default=None,
    help="Device BLE address/UUID (skips scanning)",
)
@click.option(
    "--timeout",
    "-t",
    default=SCAN_TIMEOUT,
    show_default=True,
    help="BLE scan timeout in seconds",
)
@click.option(
    "--delay",
    default=WRITE_DELAY,
    show_default=True,
    help="Delay between BLE writes in seconds",
)
@click.option("--verbose", "-v", is_flag=True, help="Log every fragment sent")
def main(
    screen_on: bool,
    screen_off: bool,
    set_pixel: Pixel | None,
    image_mode: int | None,
    upload_png: Path | None,
    upload_gif: Path | None,
    full_screen_color: Color | None,
    screen_brightness: int | None,
    countdown_start: int | None,
    countdown_cancel: bool,
    countdown_pause: bool,
    countdown_resume: bool,
    color_hue: bool,
    device_name: str | None,
    device_address: str | None,
    timeout: float,
    delay: float,
    verbose: bool,
) -> None:
    """Send commands to an iDotMatrix 32x32 LED panel."""
    setup_logging("DEBUG" if verbose else None)

    commands = _build_commands(
        screen_on=screen_on,
        screen_off=screen_off,
        set_pixel=set_pixel,
        image_mode=image_mode,
        upload_png=upload_png,
        upload_gif=upload_gif,
        full_screen_color=full_screen_color,
        screen_brightness=screen_brightness,
        countdown_start=countdown_start,
        countdown_cancel=countdown_cancel,
        countdown_pause=countdown_pause,
        countdown_resume=countdown_resume,
    )
    if not commands and not color_hue:
        raise click.UsageError("Nothing to send. Pass at least one command option.")

    try:
        asyncio.run(
            _run(
                commands,
                device_name=device_name,
                device_address=device_address,
                timeout=timeout,
                delay=delay,
                color_hue=color_hue,
            )
        )
    except KeyboardInterrupt:
        log.info("Interrupted")


if __name__ == "__main__":
    main()
