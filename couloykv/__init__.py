"""Building blocks for a Redis-compatible key-value server: RESP replies and parsing, TCP serving with middleware, a pipelining client, in-memory databases, expiry, key watching and transaction timestamps."""

__version__ = "0.1.0"