# stratumpool

An asyncio Stratum server for mining pools. It speaks the line-delimited
JSON-RPC dialect that miners use. It keeps per-connection session state and
builds coinbase transactions for solo mining.

It has no runtime dependencies beyond the Python standard library (3.10+).

## Installation

```
pip install stratumpool
```

To run the tests, install the `test` extra and run `pytest`.

## Messages

`stratumpool.messages` holds the wire types:

- `Request` has the constructors `new_subscribe`, `new_authorize` and
  `new_submit`.
- `Response` has the constructors `new_ok`, `new_error` and
  `new_set_difficulty_response`.
- `ErrorObject` is the `error` member of a response.
- `Notify` and `NotifyParams` carry `mining.notify`. `NotifyParams` goes on the
  wire as a nine-element array through `to_list()` and `from_list()`.
- `SetDifficultyNotification` is built by
  `Notify.new_set_difficulty_notification`.

Every type turns into compact JSON with `to_json()` and into a plain dict with
`to_dict()`. `Request` and `Response` read back with `from_json()` and
`from_dict()`. These raise `ValueError` on malformed input. Ids may be
unsigned 64-bit integers, strings or `None`. Members that are `None` are left
out of the JSON.

```python
from stratumpool.messages import Request, Response

req = Request.new_subscribe(1, "agent", "1.0", None)
req.to_json()
# '{"id":1,"method":"mining.subscribe","params":["agent/1.0"]}'

Response.new_ok(1, True).to_json()
# '{"id":1,"result":true}'
```

## Sessions and handlers

Each connection gets a `stratumpool.session.Session(minimum_difficulty)`. It
holds a random 32-bit session id, written as 8 hex digits. The same value
serves as `enonce1`, and `enonce1_inverted` holds its byte-swapped form. The
session also records whether the miner has subscribed, and the username and
password it authorized with. The extranonce2 size is
`stratumpool.session.EXTRANONCE2_SIZE`, which is 8.

`stratumpool.handlers.handle_message` sends each request to the handler for
its method:

- `handle_subscribe` answers with the subscription ids, `enonce1` and the
  extranonce2 size. The subscription ids are the session id with `1` or `2`
  appended.
- `handle_authorize` stores the first two params as the username and password,
  and answers `true`. It does not require a subscribe first.
- `handle_submit` answers `true`.

The handlers raise these subclasses of `stratumpool.errors.StratumError`:

- `InvalidMethod` for an unknown method.
- `SubscriptionFailure` for a second subscribe.
- `AuthorizationFailure` for a second authorize.
- `InvalidParams` for an authorize with fewer than two params.

```python
import asyncio
from stratumpool.handlers import handle_message
from stratumpool.messages import Request
from stratumpool.session import Session

session = Session(1)
response = asyncio.run(
    handle_message(Request.new_subscribe(1, "agent", "1.0", None), session)
)
```

## Addresses and coinbase transactions

`stratumpool.work.parse_address(address, network)` decodes a Base58,
Bech32 or Bech32m address. It also checks that the address belongs to the
given `Network`, one of `BITCOIN`, `TESTNET`, `TESTNET4`, `SIGNET` or
`REGTEST`. A bad address or a network mismatch raises `WorkError`.

`build_coinbase_transaction(address, value, height, default_witness_commitment)`
builds a version-2 coinbase `Transaction` with these parts:

- one input, whose script pushes the block height;
- an output that pays `value` satoshis to the address;
- when a witness commitment is given as hex, a second zero-value output
  holding it.

`Transaction` has `serialize()`, `txid()`, `from_bytes()` and
`read_from(stream)`, all in consensus encoding. `Work` is a plain record of
the fields of a mining job.

## Running a server

`stratumpool.server.StratumServer(port, address, bitcoind)` takes a port, a
bind address and a bitcoind client. The client is any object with an async
`getblocktemplate(network)` method.

`start()` does the following:

1. It calls `update_block_template()`. If the template comes back as a hex
   string that decodes to a `Block`, it is stored in `blocktemplate`;
   otherwise the failure is logged.
2. It listens and serves miners until `shutdown()` is called.

With port 0, the port chosen by the system is written back to `port`. The
`listening` event is set once the server is accepting connections.

```python
import asyncio
from stratumpool.server import StratumServer

async def main(bitcoind):
    server = StratumServer(3333, "127.0.0.1", bitcoind)
    await server.start()
```

Each connection runs `handle_connection(reader, writer, addr)`, which works
line by line:

- Each request gets one response line.
- A line that does not parse as a request is logged and skipped.
- A line longer than 8 KiB (`MAX_LINE_LENGTH`) ends the connection.
- A line that is not valid UTF-8 ends the connection.
- A request that a handler refuses ends the connection.

## What it does not do

- It includes no bitcoind RPC client; you supply one.
- It has no command-line program.
- It sends no `mining.notify` or `mining.set_difficulty` messages to miners.
- It does not validate submitted shares.
- It does not adjust difficulty: `Session.recalculate_difficulty()` returns
  the current difficulty unchanged.
- The stored block template is not turned into work for miners.