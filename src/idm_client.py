"""
Async client for iDotMatrix LED panels.

Use as a context manager to connect and send commands.
"""

import asyncio

from bleak import BleakClient, BleakScanner
from bleak.backends.characteristic import BleakGATTCharacteristic
from loguru import logger as log

from src.idm_protocol import (
    BLE_MTU,
    DEVICE_NAME_FILTER,
    WRITE_CHAR_UUID,
    Command,
    WriteMode,
    encode_command,
    fragment_frame,
)

# Pause between fragment writes
WRITE_DELAY = 0.01

# Seconds to scan before giving up
SCAN_TIMEOUT = 2.0


class IdmClient:
    """
    Async client for an iDotMatrix panel over BLE.

    Connect by address, then call send_command for each Command. Frames are
    built and fragmented by src.idm_protocol.
    """

    def __init__(
        self,
        address: str,
        *,
        write_char_uuid: str = WRITE_CHAR_UUID,
        delay: float = WRITE_DELAY,
        mtu: int = BLE_MTU,
    ) -> None:
        self.address = address
        self.write_char_uuid = write_char_uuid
        self.delay = delay
        self.mtu = mtu
        self._client: BleakClient | None = None
        self._write_char: BleakGATTCharacteristic | None = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None and self._client.is_connected

    async def connect(self) -> None:
        """Connect to the device and resolve the write characteristic."""
        log.info("Connecting to {}", self.address)
        self._client = BleakClient(self.address)
        await self._client.connect()
        log.info("Connected: {}", self._client.is_connected)

        write_char = self._client.services.get_characteristic(self.write_char_uuid)
        if write_char is None:
            await self.disconnect()
            raise RuntimeError(
                f"Unable to find write characteristic {self.write_char_uuid}"
            )
        log.debug("Found write characteristic: {}", write_char)
        self._write_char = write_char

    async def disconnect(self) -> None:
        """Disconnect from the device."""
        if self._client and self._client.is_connected:
            log.debug("Disconnecting from {}", self.address)
            await self._client.disconnect()
        self._client = None
        self._write_char = None

    async def __aenter__(self) -> "IdmClient":
        await self.connect()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.disconnect()

    async def _write_fragment(self, fragment: bytes, write_mode: WriteMode) -> None:
        if not self.is_connected or self._write_char is None:
            raise RuntimeError("Not connected")

        log.debug("Sending: {}", fragment.hex())
        await self._client.write_gatt_char(
            self._write_char,
            fragment,
            response=write_mode is WriteMode.ACKNOWLEDGED,
        )

    async def send_frame(self, frame: bytes | bytearray) -> int:
        """Write a pre-encoded frame. Returns the number of fragments sent."""
        plan = fragment_frame(frame, self.mtu)
        if not plan.fragments:
            log.warning("Empty frame, nothing to send")
            return 0

        for fragment in plan.fragments:
            await self._write_fragment(fragment, plan.write_mode)
            if self.delay > 0:
                await asyncio.sleep(self.delay)
        return len(plan.fragments)

    async def send_command(self, command: Command) -> int:
        """Encode and write one command. Returns the number of fragments sent."""
        frame = encode_command(command)
        log.debug("{} -> {} byte frame", type(command).__name__, len(frame))
        return await self.send_frame(frame)


def _matches_target(
    *,
    device_name: str,
    device_address: str,
    target_name: str | None,
    target_address: str | None,
) -> bool:
    if target_address:
        if device_address.lower() == target_address.lower():
            return True

    if target_name:
        if target_name.lower() in device_name.lower():
            return True

    return False


async def discover_device(
    *,
    name: str | None = DEVICE_NAME_FILTER,
    address: str | None = None,
    timeout: float = SCAN_TIMEOUT,
) -> str | None:
    """
    Scan for an iDotMatrix panel.

    Returns the address of the first device whose advertised name contains
    ``name`` or whose address equals ``address``, or None.
    """
    log.info("Scanning for devices ({}s)...", timeout)
    devices = await BleakScanner.discover(timeout=timeout, return_adv=True)
    for device, adv in devices.values():
        device_name = adv.local_name or device.name or ""
        if _matches_target(
            device_name=device_name,
            device_address=device.address,
            target_name=name,
            target_address=address,
        ):
            log.info("Found device: {} ({})", device_name, device.address)
            return device.address
    return None
