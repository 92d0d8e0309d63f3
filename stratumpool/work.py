"""Mining work, payout addresses and coinbase transactions."""

from __future__ import annotations

import hashlib
import io
import struct
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import BinaryIO


class WorkError(Exception):
    """Raised when work or a coinbase transaction cannot be built."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class Network(Enum):
    """The Bitcoin networks an address may belong to."""

    BITCOIN = "bitcoin"
    TESTNET = "testnet"
    TESTNET4 = "testnet4"
    SIGNET = "signet"
    REGTEST = "regtest"

    def __str__(self) -> str:
        return self.value


@dataclass
class Work:
    """A unit of work handed to a miner."""

    job_id: str
    prev_hash: str
    coinbase1: str
    coinbase2: str
    merkle_branch: list[str]
    version: str
    nbits: str
    ntime: str


def _sha256d(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


# ---------------------------------------------------------------- addresses

_MAINNET = frozenset({Network.BITCOIN})
_TESTNETS = frozenset({Network.TESTNET, Network.TESTNET4, Network.SIGNET})
_ALL_TEST = _TESTNETS | {Network.REGTEST}

_HRP_NETWORKS = {
    "bc": _MAINNET,
    "tb": _TESTNETS,
    "bcrt": frozenset({Network.REGTEST}),
}

_B58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_B58_INDEX = {ch: i for i, ch in enumerate(_B58_ALPHABET)}

_BECH32_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_BECH32_INDEX = {ch: i for i, ch in enumerate(_BECH32_CHARSET)}
_BECH32_CONST = 1
_BECH32M_CONST = 0x2BC830A3
_BECH32_GEN = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)


def _base58_decode_check(text: str) -> bytes:
    num = 0
    for ch in text:
        digit = _B58_INDEX.get(ch)
        if digit is None:
            raise ValueError(f"invalid base58 character {ch!r}")
        num = num * 58 + digit
    body = num.to_bytes((num.bit_length() + 7) // 8, "big")
    leading_zeros = len(text) - len(text.lstrip("1"))
    raw = b"\x00" * leading_zeros + body
    if len(raw) < 4:
        raise ValueError("base58 data too short")
    payload, checksum = raw[:-4], raw[-4:]
    if _sha256d(payload)[:4] != checksum:
        raise ValueError("invalid base58 checksum")
    return payload


def _bech32_polymod(values: list[int]) -> int:
    chk = 1
    for value in values:
        top = chk >> 25
        chk = ((chk & 0x1FFFFFF) << 5) ^ value
        for bit, gen in enumerate(_BECH32_GEN):
            if (top >> bit) & 1:
                chk ^= gen
    return chk


def _hrp_expand(hrp: str) -> list[int]:
    return [ord(c) >> 5 for c in hrp] + [0] + [ord(c) & 31 for c in hrp]


def _bech32_decode(text: str) -> tuple[str, list[int], int]:
    """Decode a bech32 or bech32m string into (hrp, data, checksum constant)."""
    if any(not 33 <= ord(c) <= 126 for c in text):
        raise ValueError("invalid character in bech32 string")
    if text.lower() != text and text.upper() != text:
        raise ValueError("mixed case in bech32 string")
    text = text.lower()
    pos = text.rfind("1")
    if pos < 1 or pos + 7 > len(text) or len(text) > 90:
        raise ValueError("invalid bech32 separator position or length")
    hrp = text[:pos]
    try:
        data = [_BECH32_INDEX[c] for c in text[pos + 1 :]]
    except KeyError as exc:
        raise ValueError(f"invalid bech32 character {exc.args[0]!r}") from None
    check = _bech32_polymod(_hrp_expand(hrp) + data)
    if check not in (_BECH32_CONST, _BECH32M_CONST):
        raise ValueError("invalid bech32 checksum")
    return hrp, data[:-6], check


def _convert_5_to_8(data: list[int]) -> bytes:
    acc = 0
    bits = 0
    out = bytearray()
    for value in data:
        acc = (acc << 5) | value
        bits += 5
        while bits >= 8:
            bits -= 8
            out.append((acc >> bits) & 0xFF)
        acc &= (1 << bits) - 1
    if bits >= 5 or acc:
        raise ValueError("invalid padding in witness program")
    return bytes(out)


def _decode_segwit(text: str) -> tuple[str, int, bytes]:
    hrp, data, check = _bech32_decode(text)
    if not data:
        raise ValueError("missing witness version")
    version = data[0]
    if version > 16:
        raise ValueError(f"invalid witness version {version}")
    program = _convert_5_to_8(data[1:])
    if not 2 <= len(program) <= 40:
        raise ValueError(f"invalid witness program length {len(program)}")
    if version == 0 and len(program) not in (20, 32):
        raise ValueError(f"invalid segwit v0 program length {len(program)}")
    expected = _BECH32_CONST if version == 0 else _BECH32M_CONST
    if check != expected:
        raise ValueError("wrong checksum variant for witness version")
    return hrp, version, program


class AddressKind(Enum):
    P2PKH = "p2pkh"
    P2SH = "p2sh"
    WITNESS = "witness"


@dataclass(frozen=True)
class Address:
    """A decoded Bitcoin address and the networks it is valid for."""

    kind: AddressKind
    payload: bytes
    networks: frozenset
    witness_version: int | None = None

    @classmethod
    def from_string(cls, text: str) -> Address:
        """Decode a base58 or bech32/bech32m address; raise ValueError if invalid."""
        try:
            hrp, version, program = _decode_segwit(text)
        except ValueError:
            pass
        else:
            networks = _HRP_NETWORKS.get(hrp)
            if networks is None:
                raise ValueError(f"unknown human-readable part: {hrp}")
            return cls(AddressKind.WITNESS, program, networks, version)

        if len(text) > 50:
            raise ValueError("legacy address base58 string too long")
        payload = _base58_decode_check(text)
        if len(payload) != 21:
            raise ValueError(f"invalid base58 payload length {len(payload)}")
        prefix, hash160 = payload[0], payload[1:]
        legacy = {
            0x00: (AddressKind.P2PKH, _MAINNET),
            0x05: (AddressKind.P2SH, _MAINNET),
            0x6F: (AddressKind.P2PKH, _ALL_TEST),
            0xC4: (AddressKind.P2SH, _ALL_TEST),
        }
        if prefix not in legacy:
            raise ValueError(f"invalid legacy address prefix {prefix}")
        kind, networks = legacy[prefix]
        return cls(kind, hash160, networks)

    def script_pubkey(self) -> bytes:
        """The output script that pays to this address."""
        if self.kind is AddressKind.P2PKH:
            return b"\x76\xa9\x14" + self.payload + b"\x88\xac"
        if self.kind is AddressKind.P2SH:
            return b"\xa9\x14" + self.payload + b"\x87"
        version_op = 0x00 if self.witness_version == 0 else 0x50 + self.witness_version
        return bytes([version_op, len(self.payload)]) + self.payload


def parse_address(address: str, network: Network) -> Address:
    """Parse an address supplied by a miner and check it belongs to ``network``."""
    try:
        parsed = Address.from_string(address)
    except ValueError as exc:
        raise WorkError(f"Invalid address: {exc}") from exc
    if network not in parsed.networks:
        raise WorkError(f"Address does not match network: {network}")
    return parsed


# ---------------------------------------------------------- script building


def _scriptint(value: int) -> bytes:
    if value == 0:
        return b""
    negative = value < 0
    magnitude = abs(value)
    out = bytearray()
    while magnitude > 0xFF:
        out.append(magnitude & 0xFF)
        magnitude >>= 8
    if magnitude & 0x80:
        out.append(magnitude)
        out.append(0x80 if negative else 0x00)
    else:
        out.append(magnitude | (0x80 if negative else 0x00))
    return bytes(out)


def _push_slice(data: bytes) -> bytes:
    size = len(data)
    if size < 0x4C:
        return bytes([size]) + data
    if size <= 0xFF:
        return b"\x4c" + bytes([size]) + data
    if size <= 0xFFFF:
        return b"\x4d" + struct.pack("<H", size) + data
    return b"\x4e" + struct.pack("<I", size) + data


def _push_int(value: int) -> bytes:
    if value == -1 or 1 <= value <= 16:
        return bytes([0x50 + value])
    if value == 0:
        return b"\x00"
    return _push_slice(_scriptint(value))


# ------------------------------------------------------------- transactions


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    data = stream.read(size)
    if len(data) != size:
        raise ValueError("unexpected end of data")
    return data


def _read_u8(stream: BinaryIO) -> int:
    return _read_exact(stream, 1)[0]


def _read_u32(stream: BinaryIO) -> int:
    return struct.unpack("<I", _read_exact(stream, 4))[0]


def _read_varint(stream: BinaryIO) -> int:
    first = _read_u8(stream)
    if first < 0xFD:
        return first
    if first == 0xFD:
        value, minimum = struct.unpack("<H", _read_exact(stream, 2))[0], 0xFD
    elif first == 0xFE:
        value, minimum = struct.unpack("<I", _read_exact(stream, 4))[0], 0x10000
    else:
        value, minimum = struct.unpack("<Q", _read_exact(stream, 8))[0], 0x100000000
    if value < minimum:
        raise ValueError("non-minimal varint")
    return value


def _read_varbytes(stream: BinaryIO) -> bytes:
    return _read_exact(stream, _read_varint(stream))


def _varint(value: int) -> bytes:
    if value < 0xFD:
        return bytes([value])
    if value <= 0xFFFF:
        return b"\xfd" + struct.pack("<H", value)
    if value <= 0xFFFFFFFF:
        return b"\xfe" + struct.pack("<I", value)
    return b"\xff" + struct.pack("<Q", value)


def _varbytes(data: bytes) -> bytes:
    return _varint(len(data)) + data


@dataclass
class TxIn:
    """A transaction input."""

    previous_txid: bytes
    vout: int
    script_sig: bytes
    sequence: int = 0xFFFFFFFF
    witness: list[bytes] = field(default_factory=list)

    def _encode(self) -> bytes:
        return (
            self.previous_txid
            + struct.pack("<I", self.vout)
            + _varbytes(self.script_sig)
            + struct.pack("<I", self.sequence)
        )

    @classmethod
    def _read(cls, stream: BinaryIO) -> TxIn:
        previous_txid = _read_exact(stream, 32)
        vout = _read_u32(stream)
        script_sig = _read_varbytes(stream)
        sequence = _read_u32(stream)
        return cls(previous_txid, vout, script_sig, sequence)


@dataclass
class TxOut:
    """A transaction output: an amount in satoshis and its locking script."""

    value: int
    script_pubkey: bytes

    def _encode(self) -> bytes:
        return struct.pack("<Q", self.value) + _varbytes(self.script_pubkey)

    @classmethod
    def _read(cls, stream: BinaryIO) -> TxOut:
        value = struct.unpack("<Q", _read_exact(stream, 8))[0]
        return cls(value, _read_varbytes(stream))


@dataclass
class Transaction:
    """A Bitcoin transaction in consensus encoding."""

    version: int
    lock_time: int
    inputs: list[TxIn]
    outputs: list[TxOut]

    def _encode(self, with_witness: bool) -> bytes:
        out = bytearray(struct.pack("<i", self.version))
        if with_witness:
            out += b"\x00\x01"
        out += _varint(len(self.inputs))
        for txin in self.inputs:
            out += txin._encode()
        out += _varint(len(self.outputs))
        for txout in self.outputs:
            out += txout._encode()
        if with_witness:
            for txin in self.inputs:
                out += _varint(len(txin.witness))
                for item in txin.witness:
                    out += _varbytes(item)
        out += struct.pack("<I", self.lock_time)
        return bytes(out)

    def serialize(self) -> bytes:
        """Consensus encoding, with witness data when any input carries some."""
        return self._encode(any(txin.witness for txin in self.inputs))

    def txid(self) -> str:
        """The transaction id as displayed hex (witness data excluded)."""
        return _sha256d(self._encode(False))[::-1].hex()

    @classmethod
    def read_from(cls, stream: BinaryIO) -> Transaction:
        """Read one transaction from a binary stream."""
        version = struct.unpack("<i", _read_exact(stream, 4))[0]
        inputs = [TxIn._read(stream) for _ in range(_read_varint(stream))]
        if inputs:
            outputs = [TxOut._read(stream) for _ in range(_read_varint(stream))]
        else:
            flag = _read_u8(stream)
            if flag != 1:
                raise ValueError(f"unsupported segwit flag {flag}")
            inputs = [TxIn._read(stream) for _ in range(_read_varint(stream))]
            outputs = [TxOut._read(stream) for _ in range(_read_varint(stream))]
            witnesses = [
                [_read_varbytes(stream) for _ in range(_read_varint(stream))]
                for _ in inputs
            ]
            if not any(witnesses):
                raise ValueError("witness flag set but no witnesses present")
            inputs = [replace(txin, witness=w) for txin, w in zip(inputs, witnesses)]
        lock_time = _read_u32(stream)
        return cls(version, lock_time, inputs, outputs)

    @classmethod
    def from_bytes(cls, data: bytes) -> Transaction:
        """Decode a transaction that fills ``data`` exactly."""
        stream = io.BytesIO(data)
        tx = cls.read_from(stream)
        if stream.tell() != len(data):
            raise ValueError("data not consumed entirely when decoding transaction")
        return tx


def build_coinbase_transaction(
    address: Address,
    value: int,
    height: int,
    default_witness_commitment: str | None = None,
) -> Transaction:
    """Build a coinbase paying ``value`` to ``address`` at block ``height``."""
    if not 0 <= value <= 2**64 - 1:
        raise WorkError(f"Invalid coinbase value: {value}")
    outputs = [TxOut(value, address.script_pubkey())]
    if default_witness_commitment is not None:
        try:
            commitment = bytes.fromhex(default_witness_commitment)
        except ValueError as exc:
            raise WorkError(f"Invalid witness commitment hex: {exc}") from exc
        outputs.append(TxOut(0, commitment))
    coinbase_input = TxIn(
        previous_txid=bytes(32),
        vout=0xFFFFFFFF,
        script_sig=_push_int(height),
        sequence=0xFFFFFFFF,
    )
    return Transaction(version=2, lock_time=0, inputs=[coinbase_input], outputs=outputs)