#!/usr/bin/env python3
"""
Simulate the iDotMatrix BLE protocol without a device.

Builds the same frames and fragments as the client and prints hex dumps (and
optional JSON) so you can compare with HCI snoop captures.
"""

import argparse
import json
import sys
from datetime import timedelta
from pathlib import Path

# Allow running from repo root
sys.path.insert(0, "")

from src.idm_protocol import (
    BLE_MTU,
    WRITE_CHAR_UUID,
    Command,
    CountdownStart,
    FullScreenColor,
    ScreenBrightness,
    ScreenOff,
    ScreenOn,
    SetPixel,
    UploadAnimatedImage,
    UploadStillImage,
    encode_command,
    fragment_frame,
    parse_color,
    parse_pixel,
)


def fragment_to_hex(fragment: bytes) -> str:
    return fragment.hex().upper()


def run_simulate(
    commands: list[Command],
    *,
    mtu: int = BLE_MTU,
    output_json: bool = False,
    char_uuid: str = WRITE_CHAR_UUID,
) -> None:
    frames = []
    for command in commands:
        frame = encode_command(command)
        plan = fragment_frame(frame, mtu)
        frames.append((command, frame, plan))

    if output_json:
        out = {
            "characteristic_uuid": char_uuid,
            "mtu_bytes": mtu,
            "frames": [
                {
                    "command": type(command).__name__,
                    "length": len(frame),
                    "write_mode": plan.write_mode.value,
                    "fragments": [fragment_to_hex(f) for f in plan.fragments],
                }
                for command, frame, plan in frames
            ],
        }
        print(json.dumps(out, indent=2))
        return

    print(f"Characteristic: {char_uuid}")
    print(f"MTU: {mtu} bytes\n")
    for command, frame, plan in frames:
        print(
            f"--- {type(command).__name__} ({len(frame)} bytes, "
            f"{len(plan.fragments)} fragment(s), {plan.write_mode.value}) ---"
        )
        for fragment in plan.fragments:
            print(fragment_to_hex(fragment))
        print()


def main() -> None:
    parser = argparse.ArgumentParser(
        description=(
            "Simulate iDotMatrix BLE protocol (no device). Print hex fragments."
        ),
    )
    parser.add_argument("--screen-on", action="store_true", help="Add screen on")
    parser.add_argument("--screen-off", action="store_true", help="Add screen off")
    parser.add_argument(
        "--set-pixel",
        type=str,
        default=None,
        metavar="X,Y,#RRGGBB",
        help="Add set pixel command",
    )
    parser.add_argument(
        "--color",
        type=str,
        default=None,
        help="Add full screen color (hex e.g. #ff0000)",
    )
    parser.add_argument(
        "--brightness",
        type=int,
        default=None,
        metavar="0-100",
        help="Add brightness command",
    )
    parser.add_argument(
        "--countdown",
        type=int,
        default=None,
        metavar="SECONDS",
        help="Add countdown start command",
    )
    parser.add_argument("--png", type=Path, default=None, help="Add PNG upload")
    parser.add_argument("--gif", type=Path, default=None, help="Add GIF upload")
    parser.add_argument(
        "--mtu",
        type=int,
        default=BLE_MTU,
        help="Max bytes per BLE write",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="output_json",
        help="Output JSON instead of plain hex",
    )
    args = parser.parse_args()

    if args.mtu < 1:
        parser.error("MTU must be at least 1")

    commands: list[Command] = []
    if args.screen_on:
        commands.append(ScreenOn())
    if args.screen_off:
        commands.append(ScreenOff())
    if args.set_pixel is not None:
        commands.append(SetPixel(parse_pixel(args.set_pixel)))
    if args.color is not None:
        commands.append(FullScreenColor(parse_color(args.color)))
    if args.brightness is not None:
        if args.brightness < 0 or args.brightness > 100:
            parser.error("Brightness must be 0-100")
        commands.append(ScreenBrightness(args.brightness))
    if args.countdown is not None:
        commands.append(CountdownStart(timedelta(seconds=args.countdown)))
    if args.png is not None:
        commands.append(UploadStillImage(args.png.read_bytes()))
    if args.gif is not None:
        commands.append(UploadAnimatedImage(args.gif.read_bytes()))

    if not commands:
        parser.error("At least one command option is required")

    run_simulate(commands, mtu=args.mtu, output_json=args.output_json)


if __name__ == "__main__":
    main()
