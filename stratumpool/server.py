"""The Stratum TCP server and per-connection message loop."""

from __future__ import annotations

import asyncio
import binascii
import io
import logging
import struct
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Protocol

from .errors import StratumError
from .handlers import handle_message
from .messages import Request
from .session import Session
from .work import Network, Transaction

logger = logging.getLogger(__name__)

MAX_LINE_LENGTH = 8 * 1024
"""Longest request line accepted from a miner, in bytes."""

_HEADER_SIZE = 80


class _TemplateSource(Protocol):
    async def getblocktemplate(self, network: Network) -> Any: ...


def _hash_bytes(display_hex: str) -> bytes:
    raw = bytes.fromhex(display_hex)
    if len(raw) != 32:
        raise ValueError(f"hash must be 32 bytes, got {len(raw)}")
    return raw[::-1]


def _varint(value: int) -> bytes:
    if value < 0xFD:
        return bytes([value])
    if value <= 0xFFFF:
        return b"\xfd" + struct.pack("<H", value)
    if value <= 0xFFFFFFFF:
        return b"\xfe" + struct.pack("<I", value)
    return b"\xff" + struct.pack("<Q", value)


def _read_varint(stream: BinaryIO) -> int:
    first = stream.read(1)
    if not first:
        raise ValueError("unexpected end of data")
    prefix = first[0]
    if prefix < 0xFD:
        return prefix
    size, fmt, minimum = {
        0xFD: (2, "<H", 0xFD),
        0xFE: (4, "<I", 0x10000),
        0xFF: (8, "<Q", 0x100000000),
    }[prefix]
    data = stream.read(size)
    if len(data) != size:
        raise ValueError("unexpected end of data")
    value = struct.unpack(fmt, data)[0]
    if value < minimum:
        raise ValueError("non-minimal varint")
    return value


@dataclass
class BlockHeader:
    """An 80-byte block header; hashes are held as displayed hex."""

    version: int
    prev_blockhash: str
    merkle_root: str
    time: int
    bits: int
    nonce: int

    def serialize(self) -> bytes:
        """Consensus encoding of the header."""
        return (
            struct.pack("<i", self.version)
            + _hash_bytes(self.prev_blockhash)
            + _hash_bytes(self.merkle_root)
            + struct.pack("<III", self.time, self.bits, self.nonce)
        )

    @classmethod
    def _read(cls, stream: BinaryIO) -> BlockHeader:
        data = stream.read(_HEADER_SIZE)
        if len(data) != _HEADER_SIZE:
            raise ValueError("unexpected end of data")
        version, prev, merkle, time, bits, nonce = struct.unpack("<i32s32sIII", data)
        return cls(version, prev[::-1].hex(), merkle[::-1].hex(), time, bits, nonce)


@dataclass
class Block:
    """A block: its header and transactions."""

    header: BlockHeader
    transactions: list[Transaction] = field(default_factory=list)

    def serialize(self) -> bytes:
        """Consensus encoding of the block."""
        parts = [self.header.serialize(), _varint(len(self.transactions))]
        parts.extend(tx.serialize() for tx in self.transactions)
        return b"".join(parts)

    @classmethod
    def from_bytes(cls, data: bytes) -> Block:
        """Decode a block that fills ``data`` exactly; raise ValueError otherwise."""
        stream = io.BytesIO(data)
        header = BlockHeader._read(stream)
        count = _read_varint(stream)
        transactions = [Transaction.read_from(stream) for _ in range(count)]
        if stream.tell() != len(data):
            raise ValueError("data not consumed entirely when decoding block")
        return cls(header, transactions)


class StratumServer:
    """Accepts miner connections and serves the Stratum protocol."""

    def __init__(self, port: int, address: str, bitcoind: _TemplateSource) -> None:
        self.port = port
        self.address = address
        self.bitcoind = bitcoind
        self.blocktemplate: Block | None = None
        self.listening = asyncio.Event()
        self._shutdown = asyncio.Event()

    async def update_block_template(self) -> None:
        """Fetch a block template from bitcoind and keep it if it decodes."""
        try:
            template = await self.bitcoind.getblocktemplate(Network.SIGNET)
        except Exception as exc:
            logger.info("Failed to connect to bitcoind. We won't be able to mine. (%s)", exc)
            return None
        if not isinstance(template, str):
            logger.info("blocktemplate is not a string")
            return None
        try:
            raw = binascii.unhexlify(template)
        except ValueError as exc:
            logger.info("Failed to decode hex: %s", exc)
            return None
        try:
            self.blocktemplate = Block.from_bytes(raw)
        except ValueError as exc:
            logger.info("Failed to deserialize block: %s", exc)
        return None

    async def start(self) -> None:
        """Serve miners until :meth:`shutdown` is called."""
        logger.info("Starting Stratum server at %s:%s", self.address, self.port)
        await self.update_block_template()

        bind_address = f"{self.address}:{self.port}"
        try:
            server = await asyncio.start_server(self._serve_client, self.address, self.port)
        except OSError as exc:
            raise OSError(f"Failed to bind to {bind_address}: {exc}") from exc

        if self.port == 0 and server.sockets:
            self.port = server.sockets[0].getsockname()[1]
        logger.info("Stratum server listening on %s:%s", self.address, self.port)
        self.listening.set()
        try:
            await self._shutdown.wait()
            logger.info("Shutdown signal received")
        finally:
            server.close()
            self.listening.clear()

    def shutdown(self) -> None:
        """Ask a running :meth:`start` to stop accepting connections."""
        self._shutdown.set()

    async def _serve_client(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        peer = writer.get_extra_info("peername")
        try:
            if peer is None:
                logger.info("Failed to get peer address")
                return
            logger.info("New connection from: %s", peer)
            try:
                await handle_connection(reader, writer, peer)
            except OSError as exc:
                logger.info("Error handling connection from %s: %s", peer, exc)
        finally:
            writer.close()
            with suppress(OSError):
                await writer.wait_closed()


async def handle_connection(reader: Any, writer: Any, addr: Any) -> None:
    """Read request lines from a miner, answer each, and stop on misbehaviour.

    Lines that are not valid requests are skipped; an overlong line, a
    read error or a refused request ends the connection.
    """
    session = Session(1)
    while True:
        try:
            raw = await reader.readline()
        except ValueError as exc:
            logger.info("Error reading line from %s: %s", addr, exc)
            break
        if not raw:
            break
        line_bytes = raw[:-1] if raw.endswith(b"\n") else raw
        if line_bytes.endswith(b"\r"):
            line_bytes = line_bytes[:-1]
        if len(line_bytes) > MAX_LINE_LENGTH:
            logger.info("Error reading line from %s: line too long", addr)
            break
        try:
            line = line_bytes.decode("utf-8")
        except UnicodeDecodeError as exc:
            logger.info("Error reading line from %s: %s", addr, exc)
            break

        logger.debug("Received from %s: %r", addr, line)
        try:
            request = Request.from_json(line)
        except ValueError as exc:
            logger.info("Error parsing message from %s: %s", addr, exc)
            logger.info("Raw message: %s", line)
            continue

        try:
            response = await handle_message(request, session)
        except StratumError as exc:
            logger.info(
                "Error handling message from %s: %s. Closing connection.", addr, exc
            )
            break

        payload = response.to_json()
        logger.debug("Sending to %s: %r", addr, payload)
        writer.write(f"{payload}\n".encode("utf-8"))
        await writer.drain()

    logger.info("Connection closed: %s", addr)