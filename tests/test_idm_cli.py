import colorsys
import io
import struct
import zlib
from datetime import timedelta

import pytest
from click.testing import CliRunner
from PIL import Image

import src.idm_cli as idm_cli
from src.idm_cli import _build_commands, _read_asset, hue_sweep, main
from src.idm_protocol import (
    Color,
    CountdownCancel,
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
)
from tests.test_template import TestTemplate


def _png_chunk(tag, body):
    crc = zlib.crc32(tag + body)
    return struct.pack(">I", len(body)) + tag + body + struct.pack(">I", crc)


def _oversized_png(width=20000, height=20000):
    """PNG whose header declares a size far beyond Pillow's safety limit."""
    ihdr = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return (
        b"\x89PNG\r\n\x1a\n" + _png_chunk(b"IHDR", ihdr) + _png_chunk(b"IEND", b"")
    )


def _write_image(path, fmt, size=32):
    img = Image.new("RGB", (size, size), (255, 0, 0))
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    path.write_bytes(buf.getvalue())
    return buf.getvalue()


class FakeIdmClient:
    sent: list = []
    address: str | None = None

    def __init__(self, address, *, delay):
        FakeIdmClient.address = address

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        return None

    async def send_command(self, command):
        FakeIdmClient.sent.append(command)
        return 1


@pytest.fixture
def fake_client(monkeypatch):
    FakeIdmClient.sent = []
    FakeIdmClient.address = None
    monkeypatch.setattr(idm_cli, "IdmClient", FakeIdmClient)
    return FakeIdmClient


class TestBuildCommands(TestTemplate):
    def test_commands_follow_option_order(self, tmp_path):
        png = tmp_path / "still.png"
        png_data = _write_image(png, "PNG")

        commands = _build_commands(
            countdown_cancel=True,
            screen_brightness=80,
            full_screen_color=Color(1, 2, 3),
            upload_png=png,
            image_mode=1,
            set_pixel=Pixel(0, 0, Color(0, 0, 0)),
            screen_off=True,
            screen_on=True,
            countdown_start=90,
        )

        assert commands == [
            ScreenOn(),
            ScreenOff(),
            SetPixel(Pixel(0, 0, Color(0, 0, 0))),
            ImageMode(1),
            UploadStillImage(png_data),
            FullScreenColor(Color(1, 2, 3)),
            ScreenBrightness(80),
            CountdownStart(timedelta(seconds=90)),
            CountdownCancel(),
        ]

    def test_no_options_builds_nothing(self):
        assert _build_commands() == []

    def test_gif_upload_reads_raw_bytes(self, tmp_path):
        gif = tmp_path / "anim.gif"
        gif_data = _write_image(gif, "GIF")
        assert _build_commands(upload_gif=gif) == [UploadAnimatedImage(gif_data)]


class TestReadAsset(TestTemplate):
    def test_wrong_size_is_sent_unchanged(self, tmp_path):
        path = tmp_path / "big.png"
        data = _write_image(path, "PNG", size=64)
        assert _read_asset(path, "PNG") == data

    def test_non_image_is_sent_unchanged(self, tmp_path):
        path = tmp_path / "junk.gif"
        path.write_bytes(b"not an image")
        assert _read_asset(path, "GIF") == b"not an image"

    def test_oversized_header_is_sent_unchanged(self, tmp_path):
        path = tmp_path / "huge.png"
        data = _oversized_png()
        path.write_bytes(data)
        assert _read_asset(path, "PNG") == data

    def test_oversized_upload_still_builds_command(self, tmp_path):
        path = tmp_path / "huge.png"
        data = _oversized_png()
        path.write_bytes(data)
        assert _build_commands(upload_png=path) == [UploadStillImage(data)]


class TestHueSweep(TestTemplate):
    def test_covers_whole_panel_row_by_row(self):
        commands, _ = hue_sweep()
        assert len(commands) == 32 * 32
        assert commands[0].pixel.x == 0 and commands[0].pixel.y == 0
        assert commands[1].pixel.x == 1 and commands[1].pixel.y == 0
        assert commands[32].pixel.x == 0 and commands[32].pixel.y == 1
        assert commands[-1].pixel.x == 31 and commands[-1].pixel.y == 31

    def test_starts_at_cyan_and_advances(self):
        commands, hue = hue_sweep(180.0, 0.2)
        _, g, _ = colorsys.hls_to_rgb(0.5, 0.5, 1.0)
        assert commands[0].pixel.color.g == int(g * 255)
        assert commands[0].pixel.color.r == 0
        assert commands[0].pixel.color.b == 255
        assert hue == pytest.approx((180.0 + 1024 * 0.2) % 360.0)

    def test_channels_truncate(self):
        """Fractional channel values are cut, not rounded."""
        commands, _ = hue_sweep(60.1, 0.0)
        r, _, _ = colorsys.hls_to_rgb(60.1 / 360.0, 0.5, 1.0)
        assert r * 255 % 1 > 0.5
        assert commands[0].pixel.color == Color(254, 255, 0)

    def test_red_hue(self):
        commands, _ = hue_sweep(0.0, 0.0)
        assert commands[0].pixel.color == Color(255, 0, 0)


class TestMain(TestTemplate):
    def test_requires_a_command(self, fake_client):
        result = CliRunner().invoke(main, ["--address", "AA:BB"])
        assert result.exit_code == 2
        assert "Nothing to send" in result.output

    def test_sends_commands_to_address(self, fake_client):
        result = CliRunner().invoke(
            main,
            [
                "--address",
                "AA:BB",
                "--screen-on",
                "--set-pixel",
                "2,2,#ffffff",
                "--screen-brightness",
                "50",
            ],
        )
        assert result.exit_code == 0, result.output
        assert fake_client.address == "AA:BB"
        assert fake_client.sent == [
            ScreenOn(),
            SetPixel(Pixel(2, 2, Color(255, 255, 255))),
            ScreenBrightness(50),
        ]

    def test_scans_when_no_address(self, fake_client, monkeypatch):
        async def fake_discover(*, name, timeout):
            assert name == "IDM"
            return "CC:DD"

        monkeypatch.setattr(idm_cli, "discover_device", fake_discover)
        result = CliRunner().invoke(main, ["--screen-off"])
        assert result.exit_code == 0, result.output
        assert fake_client.address == "CC:DD"
        assert fake_client.sent == [ScreenOff()]

    def test_device_not_found(self, fake_client, monkeypatch):
        async def fake_discover(*, name, timeout):
            return None

        monkeypatch.setattr(idm_cli, "discover_device", fake_discover)
        result = CliRunner().invoke(main, ["--screen-on"])
        assert result.exit_code == 1
        assert "Device not found" in result.output
        assert fake_client.sent == []

    def test_rejects_bad_color(self, fake_client):
        result = CliRunner().invoke(
            main, ["--address", "AA:BB", "--full-screen-color", "#12"]
        )
        assert result.exit_code == 2
        assert "Invalid color" in result.output

    def test_rejects_brightness_over_100(self, fake_client):
        result = CliRunner().invoke(
            main, ["--address", "AA:BB", "--screen-brightness", "101"]
        )
        assert result.exit_code == 2
