"""
Milight wire-level command client.

This module implements the sending side of both Milight bridge generations
using asyncio. It contains the MilightClient class, which is bound to one
bridge (ip + generation) and sends batches of MilightCommands to it.

Terms:
- Command = A primitive MilightCommand built from a CommandTable
- Frame = The UDP packet carrying one command
- Session = The v6 (iBox) session id the bridge hands out on request

Legacy frame: the three command bytes as-is, sent to port 8899.
v6 frame:     [0x80, 0x00, 0x00, 0x00, 0x11, sid1, sid2, 0x00, seq, 0x00, command(10), 0x00, checksum]
  - checksum = sum of the command bytes and the trailing 0x00, truncated to one byte
  - seq is 1 byte (0..255), incremented per frame

Example usage:
async def main():
    client = MilightClient("192.0.2.10", BridgeGeneration.IBOX)
    async with client:
        table = get_command_table(BridgeGeneration.IBOX, ZoneType.RGBWW)
        await client.send_commands([table.on(1), table.brightness(1, 50)])

asyncio.run(main())
"""

import asyncio
import logging
import time
from typing import Optional, Tuple

from colorama import Fore, Style

from ..api.commands import MilightCommand
from ..api.types import BridgeGeneration
from ..exceptions import MilightTimeoutError, MilightTransportError


# Constants
class ClientConst:
    """Constants for the MilightClient"""
    LEGACY_PORT = 8899
    IBOX_PORT = 5987

    LEGACY_COMMAND_DELAY = 0.1  # seconds between frames
    IBOX_COMMAND_DELAY = 0.1

    SESSION_TIMEOUT = 1.0
    SESSION_RETRIES = 2
    SESSION_LIFETIME = 60.0  # request a fresh session after this many seconds

    SESSION_REQUEST = bytes([
        0x20, 0x00, 0x00, 0x00, 0x16, 0x02, 0x62, 0x3A, 0xD5, 0xED, 0xA3, 0x01, 0xAE, 0x08,
        0x2D, 0x46, 0x61, 0x41, 0xA7, 0xF6, 0xDC, 0xAF, 0xD3, 0xE6, 0x00, 0x00, 0x1E,
    ])
    SESSION_RESPONSE = 0x28
    SESSION_RESPONSE_LENGTH = 22
    FRAME_HEADER = (0x80, 0x00, 0x00, 0x00, 0x11)


def checksum(buf: bytes) -> int:
    """v6 checksum: byte sum of the command and the padding byte"""
    return sum(buf) & 0xFF


def frame_v6(payload: bytes, session: Tuple[int, int], seq: int) -> bytes:
    """Wrap a 10-byte v6 command in its frame"""
    body = payload + bytes([0x00])
    return bytes([*ClientConst.FRAME_HEADER, session[0], session[1], 0x00, seq & 0xFF, 0x00]) + body + bytes([checksum(body)])


def parse_session(datagram: bytes) -> Optional[Tuple[int, int]]:
    """Extract the session id from a v6 session response, or None if it isn't one"""
    if len(datagram) < ClientConst.SESSION_RESPONSE_LENGTH or datagram[0] != ClientConst.SESSION_RESPONSE:
        return None
    return datagram[19], datagram[20]


# Protocol classes
class MilightClientProtocol(asyncio.DatagramProtocol):
    def __init__(self, response_handler, logger: Optional[logging.Logger] = None):
        self.response_handler = response_handler
        self.logger = logger or logging.getLogger(__name__)
        self.transport: Optional[asyncio.transports.DatagramTransport] = None

    def connection_made(self, transport):
        self.transport = transport

    def datagram_received(self, data, addr):
        self.response_handler(data, addr)

    def error_received(self, exc):
        self.logger.error(f"Bridge protocol error: {exc}")

    def connection_lost(self, exc):
        if exc:
            self.logger.error(f"Bridge connection lost: {exc}")
        else:
            self.logger.debug("Bridge connection closed")


class MilightClient:
    """
    Sends command batches to one bridge. Sends are best-effort: the bridge's
    acknowledgements are not awaited and frames within a batch are spaced by
    a fixed delay. Batches are serialised so legacy zone addressing is not
    interleaved between callers.
    """

    def __init__(self,
                 ip: str,
                 generation: BridgeGeneration,
                 logger: Optional[logging.Logger] = None,
                 print_traffic: bool = False):
        self.ip = ip
        self.generation = generation
        self.port = ClientConst.IBOX_PORT if generation == BridgeGeneration.IBOX else ClientConst.LEGACY_PORT
        self.logger = logger or logging.getLogger(__name__)
        self.print_traffic = print_traffic
        self._transport: Optional[asyncio.transports.DatagramTransport] = None
        self._lock = asyncio.Lock()
        self._closed = False
        self._session: Optional[Tuple[int, int]] = None
        self._session_time: float = 0.0
        self._session_future: Optional[asyncio.Future] = None
        self._next_seq: int = 0

    def __repr__(self) -> str:
        return f"MilightClient<{self.generation.value} {self.ip}:{self.port}>"

    async def connect(self) -> None:
        if self._closed: raise MilightTransportError(f"{self} is closed")
        if self._transport is not None: return
        loop = asyncio.get_running_loop()
        try:
            self._transport, _ = await loop.create_datagram_endpoint(
                lambda: MilightClientProtocol(self._receive, self.logger),
                remote_addr=(self.ip, self.port),
            )
        except OSError as e:
            raise MilightTransportError(f"Could not open socket to {self.ip}:{self.port}: {e}") from e
        self.logger.debug(f"Connected to Milight bridge at {self.ip}:{self.port}")

    async def send_commands(self, commands: list[MilightCommand]) -> bool:
        """Send a batch of commands in order. Returns True once every frame was handed to the socket."""
        if not commands:
            return True
        async with self._lock:
            await self.connect()
            if self.generation == BridgeGeneration.IBOX:
                await self._send_ibox(commands)
            else:
                await self._send_legacy(commands)
        return True

    async def _send_legacy(self, commands: list[MilightCommand]) -> None:
        for i, command in enumerate(commands):
            if i: await asyncio.sleep(ClientConst.LEGACY_COMMAND_DELAY)
            self._write(command.payload, command)

    async def _send_ibox(self, commands: list[MilightCommand]) -> None:
        session = await self._get_session()
        for i, command in enumerate(commands):
            if i: await asyncio.sleep(ClientConst.IBOX_COMMAND_DELAY)
            self._write(frame_v6(command.payload, session, self._alloc_seq()), command)

    def _write(self, wire: bytes, command: Optional[MilightCommand] = None) -> None:
        if self._transport is None or self._transport.is_closing():
            raise MilightTransportError(f"{self} is not connected")
        try:
            self._transport.sendto(wire)  # Connected socket doesn't need address
        except OSError as e:
            raise MilightTransportError(f"Send to {self.ip}:{self.port} failed: {e}") from e
        label = repr(command) if command else "session request"
        if self.print_traffic:
            print(Fore.MAGENTA + f"SEND: {self.ip}:{self.port}  "
                + Fore.WHITE + Style.DIM + label.ljust(28)
                + Style.BRIGHT + Fore.CYAN + f"  [{', '.join(f'0x{b:02X}' for b in wire)}]"
                + Style.RESET_ALL)
        else:
            self.logger.debug(f"Sent {label} to {self.ip}: {wire.hex(' ')}")

    async def _get_session(self) -> Tuple[int, int]:
        if self._session is not None and time.monotonic() - self._session_time < ClientConst.SESSION_LIFETIME:
            return self._session
        loop = asyncio.get_running_loop()
        for attempt in range(ClientConst.SESSION_RETRIES + 1):
            self._session_future = loop.create_future()
            try:
                self._write(ClientConst.SESSION_REQUEST)
                self._session = await asyncio.wait_for(self._session_future, timeout=ClientConst.SESSION_TIMEOUT)
                self._session_time = time.monotonic()
                self.logger.debug(f"Got session {self._session[0]:02X}{self._session[1]:02X} from {self.ip}")
                return self._session
            except asyncio.TimeoutError:
                continue
            finally:
                self._session_future = None
        raise MilightTimeoutError(f"No session response from iBox bridge at {self.ip} after {ClientConst.SESSION_RETRIES + 1} attempts")

    def _receive(self, datagram: bytes, addr: Tuple[str, int]) -> None:
        if self.print_traffic:
            print(Fore.MAGENTA + f"RECV: {addr[0]}:{addr[1]}" +
                  Fore.CYAN + f"  [{', '.join(f'0x{b:02X}' for b in datagram)}]" +
                  Style.RESET_ALL)
        session = parse_session(datagram)
        if session is None:
            # Command acknowledgements, not awaited
            return
        if self._session_future is not None and not self._session_future.done():
            self._session_future.set_result(session)

    def _alloc_seq(self) -> int:
        seq = self._next_seq
        self._next_seq = (self._next_seq + 1) & 0xFF
        return seq

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def is_connected(self) -> bool:
        """Check if client is connected"""
        return self._transport is not None and not self._closed

    async def close(self):
        """Close the client"""
        self._closed = True
        if self._transport:
            self._transport.close()
            self._transport = None
