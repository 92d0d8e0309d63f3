import io

import pytest

from stratumpool.work import (
    Address,
    Network,
    Transaction,
    TxIn,
    TxOut,
    WorkError,
    build_coinbase_transaction,
    parse_address,
)

MAINNET_P2PKH = "1HpRF3JgafxaqjhMEjLNbevpRVvAp15t3A"
TESTNET_P2WPKH = "tb1q0afww6y0kgl4tyjjyv6xlttvfwdfqxvrfzz35f"

GENESIS_COINBASE_HEX = (
    "01000000010000000000000000000000000000000000000000000000000000000000000000"
    "ffffffff4d04ffff001d0104455468652054696d65732030332f4a616e2f32303039204368"
    "616e63656c6c6f72206f6e206272696e6b206f66207365636f6e64206261696c6f75742066"
    "6f722062616e6b73ffffffff0100f2052a01000000434104678afdb0fe5548271967f1a671"
    "30b7105cd6a828e03909a67962e0ea1f61deb649f6bc3f4cef38c4f35504e51ec112de5c38"
    "4df7ba0b8d578a4c702b6bf11d5fac00000000"
)
GENESIS_COINBASE_TXID = "4a5e1e4baab89f3a32518a88c31bc87f618f76673e2cc77ab2127b7afdeda33b"


def test_parse_address_valid_mainnet():
    address = parse_address(MAINNET_P2PKH, Network.BITCOIN)
    script = address.script_pubkey()
    assert len(script) == 25
    assert script[:3] == b"\x76\xa9\x14"
    assert script[-2:] == b"\x88\xac"


def test_parse_address_valid_testnet():
    address = parse_address(TESTNET_P2WPKH, Network.TESTNET)
    script = address.script_pubkey()
    assert len(script) == 22
    assert script[:2] == b"\x00\x14"


def test_parse_address_invalid_format():
    with pytest.raises(WorkError) as excinfo:
        parse_address("not_a_valid_address", Network.BITCOIN)
    assert "Invalid address" in str(excinfo.value)


def test_parse_address_wrong_network():
    with pytest.raises(WorkError) as excinfo:
        parse_address(MAINNET_P2PKH, Network.TESTNET)
    msg = str(excinfo.value)
    assert "Address does not match network" in msg
    assert "testnet" in msg


def test_testnet_bech32_valid_for_signet_but_not_regtest():
    assert parse_address(TESTNET_P2WPKH, Network.SIGNET).witness_version == 0
    with pytest.raises(WorkError, match="regtest"):
        parse_address(TESTNET_P2WPKH, Network.REGTEST)


def test_bech32_uppercase_accepted():
    lower = Address.from_string(TESTNET_P2WPKH)
    upper = Address.from_string(TESTNET_P2WPKH.upper())
    assert upper.script_pubkey() == lower.script_pubkey()


def test_bech32_mixed_case_rejected():
    mixed = "tb1Q" + TESTNET_P2WPKH[4:]
    with pytest.raises(ValueError):
        Address.from_string(mixed)


def test_bech32_bad_checksum_rejected():
    with pytest.raises(WorkError, match="Invalid address"):
        parse_address(TESTNET_P2WPKH[:-1] + "g", Network.TESTNET)


def test_base58_bad_checksum_rejected():
    with pytest.raises(WorkError, match="Invalid address"):
        parse_address(MAINNET_P2PKH[:-1] + "B", Network.BITCOIN)


@pytest.mark.parametrize(
    "height, script_sig",
    [
        (0, b"\x00"),
        (1, b"\x51"),
        (16, b"\x60"),
        (-1, b"\x4f"),
        (17, b"\x01\x11"),
        (123, b"\x01\x7b"),
        (128, b"\x02\x80\x00"),
        (255, b"\x02\xff\x00"),
        (256, b"\x02\x00\x01"),
        (500000, b"\x03\x20\xa1\x07"),
    ],
)
def test_coinbase_height_encoding(height, script_sig):
    address = parse_address(TESTNET_P2WPKH, Network.TESTNET)
    tx = build_coinbase_transaction(address, 5_000_000_000, height, None)
    assert tx.inputs[0].script_sig == script_sig


def test_coinbase_structure():
    address = parse_address(TESTNET_P2WPKH, Network.TESTNET)
    tx = build_coinbase_transaction(address, 5_000_000_000, 123, None)

    assert tx.version == 2
    assert tx.lock_time == 0
    assert len(tx.inputs) == 1
    txin = tx.inputs[0]
    assert txin.previous_txid == bytes(32)
    assert txin.vout == 0xFFFFFFFF
    assert txin.sequence == 0xFFFFFFFF
    assert txin.witness == []
    assert tx.outputs == [TxOut(5_000_000_000, address.script_pubkey())]

    raw = tx.serialize()
    assert raw[:4] == b"\x02\x00\x00\x00"
    assert raw[4] == 1
    assert raw[-4:] == b"\x00\x00\x00\x00"


def test_coinbase_with_witness_commitment():
    address = parse_address(TESTNET_P2WPKH, Network.TESTNET)
    commitment = "6a24aa21a9ede2f61c3f71d1defd3fa999dfa36953755c690689799962b48bebd836974e8cf9"
    tx = build_coinbase_transaction(address, 1000, 10, commitment)
    assert len(tx.outputs) == 2
    assert tx.outputs[1].value == 0
    assert tx.outputs[1].script_pubkey == bytes.fromhex(commitment)


def test_coinbase_invalid_witness_commitment():
    address = parse_address(TESTNET_P2WPKH, Network.TESTNET)
    with pytest.raises(WorkError, match="Invalid witness commitment hex"):
        build_coinbase_transaction(address, 1000, 10, "zz")


def test_coinbase_round_trip():
    address = parse_address(MAINNET_P2PKH, Network.BITCOIN)
    tx = build_coinbase_transaction(address, 625_000_000, 840000, None)
    decoded = Transaction.from_bytes(tx.serialize())
    assert decoded == tx
    assert decoded.txid() == tx.txid()
    assert len(tx.txid()) == 64


def test_genesis_coinbase_decodes_with_known_txid():
    raw = bytes.fromhex(GENESIS_COINBASE_HEX)
    tx = Transaction.from_bytes(raw)
    assert tx.version == 1
    assert tx.outputs[0].value == 5_000_000_000
    assert tx.txid() == GENESIS_COINBASE_TXID
    assert tx.serialize() == raw


def test_witness_transaction_round_trip():
    tx = Transaction(
        version=2,
        lock_time=0,
        inputs=[TxIn(bytes(range(32)), 1, b"", 0xFFFFFFFE, [b"\x01\x02", b""])],
        outputs=[TxOut(42, b"\x00\x14" + bytes(20))],
    )
    raw = tx.serialize()
    assert raw[4:6] == b"\x00\x01"
    assert Transaction.from_bytes(raw) == tx

    stripped = Transaction(
        version=2,
        lock_time=0,
        inputs=[TxIn(bytes(range(32)), 1, b"", 0xFFFFFFFE)],
        outputs=[TxOut(42, b"\x00\x14" + bytes(20))],
    )
    assert tx.txid() == stripped.txid()
    assert len(stripped.serialize()) < len(raw)


def test_read_from_stream_leaves_trailing_bytes():
    address = parse_address(TESTNET_P2WPKH, Network.TESTNET)
    tx = build_coinbase_transaction(address, 1, 1, None)
    stream = io.BytesIO(tx.serialize() + b"\xaa\xbb")
    assert Transaction.read_from(stream) == tx
    assert stream.read() == b"\xaa\xbb"


def test_from_bytes_rejects_trailing_data():
    address = parse_address(TESTNET_P2WPKH, Network.TESTNET)
    tx = build_coinbase_transaction(address, 1, 1, None)
    with pytest.raises(ValueError, match="not consumed"):
        Transaction.from_bytes(tx.serialize() + b"\x00")


def test_from_bytes_rejects_truncated_data():
    with pytest.raises(ValueError):
        Transaction.from_bytes(bytes.fromhex("deadbeef"))


def test_segwit_flag_without_witness_rejected():
    raw = (
        b"\x02\x00\x00\x00"
        + b"\x00\x01"
        + b"\x01"
        + bytes(32)
        + b"\xff\xff\xff\xff"
        + b"\x00"
        + b"\xff\xff\xff\xff"
        + b"\x00"
        + b"\x00"
        + b"\x00\x00\x00\x00"
    )
    with pytest.raises(ValueError, match="no witnesses"):
        Transaction.from_bytes(raw)