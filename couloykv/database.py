"""Logical databases that execute Redis-style commands."""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from typing import Callable, Union

from .kvdict import Dict, MemoryDict
from .reply import (
    ArgNumErrReply,
    BulkReply,
    IntReply,
    MultiBulkReply,
    NullBulkReply,
    OkReply,
    PongReply,
    Reply,
    StandardErrReply,
    StatusReply,
    UnknownErrReply,
)
from .server import ClientState

_log = logging.getLogger(__name__)

DB_COUNT = 16


class KeyType(enum.IntEnum):
    """The kind of value bound to a key."""

    STRING = 0
    LIST = 1
    HASH = 2
    SET = 3
    SORTSET = 4
    BITMAP = 5


_TYPE_NAMES = {
    KeyType.STRING: "string",
    KeyType.LIST: "list",
    KeyType.HASH: "hash",
    KeyType.SET: "set",
    KeyType.SORTSET: "zset",
    KeyType.BITMAP: "bitmap",
}


@dataclass
class DataEntity:
    """A value together with the kind of data it holds."""

    data: bytes
    key_type: Union[KeyType, int] = KeyType.STRING


ExecFunc = Callable[["SingleDB", list], Reply]


@dataclass(frozen=True)
class Command:
    """A registered command: its executor and allowed argument count.

    ``arity`` counts the command name too; a negative arity means at least
    ``-arity`` items.
    """

    executor: ExecFunc
    arity: int


_COMMANDS: dict[str, Command] = {}


def register_command(name: str, executor: ExecFunc, arity: int) -> None:
    """Register ``executor`` under the case-insensitive ``name``."""
    _COMMANDS[name.lower()] = Command(executor, arity)


def validate_arity(arity: int, cmd_args: list) -> bool:
    """Return True when ``cmd_args`` has a length ``arity`` allows."""
    if arity >= 0:
        return len(cmd_args) == arity
    return len(cmd_args) >= -arity


def _text(raw: bytes) -> str:
    return bytes(raw).decode("utf-8", "surrogateescape")


class SingleDB:
    """One logical database over a key-value dictionary."""

    def __init__(self, data: Dict | None = None, index: int = 0) -> None:
        self.data: Dict = data if data is not None else MemoryDict()
        self.index = index

    def exec(self, client: ClientState, cmd_line: list) -> Reply:
        """Execute one command line (name first) against this database."""
        cmd_name = _text(cmd_line[0]).lower()
        cmd = _COMMANDS.get(cmd_name)
        if cmd is None:
            return StandardErrReply(f"ERR unknown command '{cmd_name}'")
        if not validate_arity(cmd.arity, cmd_line):
            return ArgNumErrReply(cmd_name)
        return cmd.executor(self, list(cmd_line[1:]))

    def close(self) -> None:
        self.index = 0

    def get_entity(self, key: str) -> DataEntity | None:
        """Return the entity bound to ``key``, or None."""
        raw = self.data.get(key)
        if raw is None:
            return None
        try:
            key_type: Union[KeyType, int] = KeyType(raw[0])
        except ValueError:
            key_type = raw[0]
        return DataEntity(raw[1:], key_type)

    @staticmethod
    def _encode(entity: DataEntity) -> bytes:
        return bytes([int(entity.key_type)]) + bytes(entity.data)

    def put_entity(self, key: str, entity: DataEntity) -> int:
        """Bind ``key`` to ``entity``."""
        return self.data.put(key, self._encode(entity))

    def put_if_exists(self, key: str, entity: DataEntity) -> int:
        """Replace the entity of an existing key."""
        return self.data.put_if_exists(key, self._encode(entity))

    def put_if_absent(self, key: str, entity: DataEntity) -> int:
        """Bind ``key`` only when it is not yet present."""
        return self.data.put_if_absent(key, self._encode(entity))

    def exists(self, key: str) -> bool:
        return self.data.exists(key)

    def remove(self, key: str) -> None:
        self.data.remove(key)

    def removes(self, *args: str) -> int:
        """Remove the given keys; return how many existed."""
        deleted = 0
        for key in args:
            if self.data.exists(key):
                self.remove(key)
                deleted += 1
        return deleted

    def flush(self) -> None:
        """Remove every key."""
        self.data.clear()


_INDEX = re.compile(r"[+-]?[0-9]+")


class MultiDB:
    """A set of numbered databases; each client selects one of them."""

    def __init__(
        self, size: int = DB_COUNT, dict_factory: Callable[[], Dict] = MemoryDict
    ) -> None:
        self.db_set = [SingleDB(dict_factory(), i) for i in range(size)]

    def exec(self, client: ClientState, cmd_line: list) -> Reply | None:
        """Execute a command for ``client``; None when execution failed."""
        try:
            cmd_name = _text(cmd_line[0]).lower()
            if cmd_name == "select":
                if len(cmd_line) != 2:
                    return ArgNumErrReply("select")
                return self._select(client, cmd_line[1])
            return self.db_set[client.selected_db].exec(client, cmd_line)
        except Exception:
            _log.exception("error occurs")
            return None

    def _select(self, client: ClientState, arg: bytes) -> Reply:
        text = _text(arg)
        if _INDEX.fullmatch(text) is None:
            return StandardErrReply("ERR invalid DB index")
        index = int(text)
        if not 0 <= index < len(self.db_set):
            return StandardErrReply("ERR DB index is out of range")
        client.selected_db = index
        return OkReply()

    def close(self) -> None:
        for db in self.db_set:
            db.close()


def _compile_pattern(pattern: str) -> re.Pattern:
    """Compile a glob (``*``, ``?``, ``[...]``, ``[^...]``, ``\\``) to a regex."""
    out = []
    i, n = 0, len(pattern)
    while i < n:
        ch = pattern[i]
        if ch == "*":
            out.append(".*")
        elif ch == "?":
            out.append(".")
        elif ch == "\\" and i + 1 < n:
            i += 1
            out.append(re.escape(pattern[i]))
        elif ch == "[":
            j = i + 1
            negate = j < n and pattern[j] == "^"
            if negate:
                j += 1
            members = []
            while j < n and pattern[j] != "]":
                if pattern[j] == "\\" and j + 1 < n:
                    j += 1
                    members.append(re.escape(pattern[j]))
                elif pattern[j] == "-" and members and j + 1 < n and pattern[j + 1] != "]":
                    members.append("-")
                else:
                    members.append(re.escape(pattern[j]))
                j += 1
            if j >= n:
                out.append(re.escape(ch))
            else:
                out.append("[" + ("^" if negate else "") + "".join(members) + "]")
                i = j
        else:
            out.append(re.escape(ch))
        i += 1
    return re.compile("".join(out), re.DOTALL)


def _exec_del(db: SingleDB, args: list) -> Reply:
    return IntReply(db.removes(*(_text(a) for a in args)))


def _exec_exists(db: SingleDB, args: list) -> Reply:
    return IntReply(sum(1 for a in args if db.exists(_text(a))))


def _exec_flush_db(db: SingleDB, args: list) -> Reply:
    db.flush()
    return OkReply()


def _exec_type(db: SingleDB, args: list) -> Reply:
    entity = db.get_entity(_text(args[0]))
    if entity is None:
        return StatusReply("none")
    name = _TYPE_NAMES.get(entity.key_type)
    if name is None:
        return UnknownErrReply()
    return StatusReply(name)


def _exec_rename(db: SingleDB, args: list) -> Reply:
    if len(args) != 2:
        return StandardErrReply("ERR wrong number of arguments for 'rename' command")
    src, dest = _text(args[0]), _text(args[1])
    entity = db.get_entity(src)
    if entity is None:
        return StandardErrReply("no such key")
    db.put_entity(dest, entity)
    db.remove(src)
    return OkReply()


def _exec_rename_nx(db: SingleDB, args: list) -> Reply:
    src, dest = _text(args[0]), _text(args[1])
    if db.exists(dest):
        return IntReply(0)
    entity = db.get_entity(src)
    if entity is None:
        return StandardErrReply("no such key")
    db.removes(src, dest)
    db.put_entity(dest, entity)
    return IntReply(1)


def _exec_keys(db: SingleDB, args: list) -> Reply:
    pattern = _compile_pattern(_text(args[0]))
    result = []

    def consumer(key: bytes, value: bytes) -> bool:
        if pattern.fullmatch(_text(key)):
            result.append(key)
        return True

    db.data.for_each(consumer)
    return MultiBulkReply(result)


def _exec_ping(db: SingleDB, args: list) -> Reply:
    if not args:
        return PongReply()
    if len(args) == 1:
        return StatusReply(_text(args[0]))
    return StandardErrReply("ERR wrong number of arguments for 'ping' command")


def _exec_get(db: SingleDB, args: list) -> Reply:
    entity = db.get_entity(_text(args[0]))
    if entity is None:
        return NullBulkReply()
    return BulkReply(entity.data)


def _exec_set(db: SingleDB, args: list) -> Reply:
    db.put_entity(_text(args[0]), DataEntity(bytes(args[1]), KeyType.STRING))
    return OkReply()


def _exec_set_nx(db: SingleDB, args: list) -> Reply:
    entity = DataEntity(bytes(args[1]), KeyType.STRING)
    return IntReply(db.put_if_absent(_text(args[0]), entity))


def _exec_get_set(db: SingleDB, args: list) -> Reply:
    key = _text(args[0])
    old = db.get_entity(key)
    db.put_entity(key, DataEntity(bytes(args[1]), KeyType.STRING))
    if old is None:
        return NullBulkReply()
    return BulkReply(old.data)


def _exec_str_len(db: SingleDB, args: list) -> Reply:
    entity = db.get_entity(_text(args[0]))
    if entity is None:
        return NullBulkReply()
    return IntReply(len(entity.data))


register_command("Del", _exec_del, -2)
register_command("Exists", _exec_exists, -2)
register_command("Keys", _exec_keys, 2)
register_command("FlushDB", _exec_flush_db, -1)
register_command("Type", _exec_type, 2)
register_command("Rename", _exec_rename, 3)
register_command("RenameNx", _exec_rename_nx, 3)
register_command("ping", _exec_ping, -1)
register_command("Get", _exec_get, 2)
register_command("Set", _exec_set, -3)
register_command("SetNx", _exec_set_nx, 3)
register_command("GetSet", _exec_get_set, 3)
register_command("StrLen", _exec_str_len, 2)