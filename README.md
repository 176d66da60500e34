# couloykv

`couloykv` is a set of building blocks for a small Redis-compatible key-value
server. It uses only the standard library.

## Modules

| Module | What it holds |
| --- | --- |
| `couloykv.reply` | RESP replies (`StatusReply`, `IntReply`, `BulkReply`, `MultiBulkReply`, `OkReply`, `PongReply`, `NullBulkReply`, ...). Error replies derive from `ErrorReply`, which is also an exception. `is_error_reply` tests whether a reply is an error. |
| `couloykv.parser` | `parse_stream(stream)` reads a binary stream and yields `Payload(data=..., error=...)` objects. A malformed line yields a payload whose `error` is a `ProtocolError`, and parsing continues. The last payload carries the I/O error, which is an `EOFError` at end of input. |
| `couloykv.options` | `KuloyOptions`, which holds storage settings, cluster peers and this node's position (`set_cluster_peers`, `is_cluster`). |
| `couloykv.server` | `TcpServer`, which serves each accepted connection on its own thread. Also `Conn`, which carries the per-client `remote_addr` and `selected_db`, the `TCPHandler` interface, `listen_and_serve`, and the exceptions `ServerClosed` and `AbortHandler`. |
| `couloykv.router` | A middleware chain over each connection: `TcpSliceRouter`, `TcpSliceGroup.use`, `TcpSliceRouterContext` (`next`, `abort`, `get`, `set`, `write`), `TcpSliceRouterHandler` and `TailService`. |
| `couloykv.client` | `Client`, a RESP client that pipelines requests over one connection. It sends a heartbeat PING and reconnects when a write fails. |
| `couloykv.kvdict` | The `Dict` interface and the thread-safe in-memory `MemoryDict`. |
| `couloykv.database` | The command registry (`register_command`, `validate_arity`), `SingleDB`, and `MultiDB`, which has 16 numbered databases by default. |
| `couloykv.handler` | `RespHandler`. Its `middleware()` parses requests and answers them from a database. |
| `couloykv.ttl` | `TTL`, an expiry scheduler that calls a deleter for each expired `Job`. |
| `couloykv.watch` | `WatcherManager`, which delivers `WatchEvent`s (`EventType.PUT` / `EventType.DEL`) to the `Watcher`s of a key. |
| `couloykv.keycodec` | `encode_field_key` / `decode_field_key`, which join a hash key and a field behind a varint length header. |
| `couloykv.oracle` | `Oracle`, which hands out increasing transaction timestamps, tracks active and committed `TxnState`s and detects write conflicts. |

## Commands

`SingleDB` runs these commands. Command names are case-insensitive:

`PING`, `GET`, `SET`, `SETNX`, `GETSET`, `STRLEN`, `DEL`, `EXISTS`, `KEYS`
(glob patterns with `*`, `?`, `[...]`, `[^...]`), `TYPE`, `RENAME`, `RENAMENX`,
`FLUSHDB`.

`MultiDB` handles `SELECT <index>` itself. It passes every other command to the
database that the client has selected.

The arity of a command counts the command name. A negative arity `-n` means at
least `n` items:

```python
from couloykv.database import validate_arity

assert validate_arity(2, [b"get", b"key"])
assert validate_arity(-2, [b"del", b"a", b"b", b"c"])
assert not validate_arity(2, [b"get"])
```

Calling a database directly:

```python
from couloykv.database import MultiDB
from couloykv.server import ClientState

db = MultiDB()
client = ClientState()
db.exec(client, [b"SET", b"k", b"v"]).to_bytes()   # b"+OK\r\n"
db.exec(client, [b"GET", b"k"]).to_bytes()         # b"$1\r\nv\r\n"
db.exec(client, [b"SELECT", b"3"])                 # client.selected_db == 3
```

`MultiDB.exec` returns `None` when a command raises. The handler answers a
`None` result with `-ERR unknown`.

## Running a server

```python
from couloykv.handler import RespHandler
from couloykv.router import TailService, TcpSliceRouter, TcpSliceRouterHandler
from couloykv.server import TcpServer

resp = RespHandler()
router = TcpSliceRouter()
router.group().use(resp.middleware())
handler = TcpSliceRouterHandler(lambda c: TailService(c.ctx), router)

server = TcpServer("127.0.0.1:6380", handler)
server.listen_and_serve()   # blocks; raises ServerClosed after server.close()
```

Talking to a server:

```python
from couloykv.client import Client

client = Client("127.0.0.1:6380")
client.start()
reply = client.send([b"PING"])   # StatusReply or PongReply; error reply on timeout
client.close()
```

## Expiry and watching

`TTL.start()` and `WatcherManager.start()` run on the calling thread until
`stop()` is called, so start each of them on a thread of its own:

```python
import threading, time
from couloykv.ttl import TTL, Job
from couloykv.watch import WatcherManager, WatchEvent, EventType

ttl = TTL(lambda key: print("expired", key))
threading.Thread(target=ttl.start, daemon=True).start()
ttl.add(Job("session", time.time() + 1.0))

wm = WatcherManager()
threading.Thread(target=wm.start, daemon=True).start()
cancel = threading.Event()
watcher = wm.watch("session", cancel)
wm.notify(WatchEvent("session", b"v", EventType.PUT))
watcher.get(timeout=1.0)   # WatchEvent(key='session', value=b'v', event_type=PUT)
cancel.set()               # ends the watch; get() then returns None
```

## Transaction timestamps

`Oracle.new_begin` gives a `TxnState` its start timestamp and records it as
active. `Oracle.new_commit` gives it a commit timestamp and moves it to the
committed records. `has_conflict` returns True when a transaction that
committed after the given one began wrote one of the same string keys or the
same hash fields. Callers take `Oracle.lock` around these calls. The oracle
never takes it itself.

## What this package does not do

- Data is kept in memory only (`MemoryDict`). Nothing is written to disk and
  nothing survives a restart.
- There is no transaction API for reading and writing values, and no list or
  hash commands. `Oracle` covers only timestamps and conflict detection.
- `KuloyOptions` can describe cluster peers, but there is no cluster mode. No
  gossip, no key routing to peers.
- `TTL` and `WatcherManager` are not wired into the databases. The caller
  feeds them jobs and events.
- There is no command-line program. The server is started from Python code as
  shown above.