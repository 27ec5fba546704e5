"""
Mantaray (v0.2) path trie.

Nodes map byte-string path prefixes to child nodes; a node may carry an
entry (the content reference) and a JSON metadata map. Nodes are persisted
bottom-up: a parent's serialized form embeds the references of its children,
so every child must be saved before its parent is serialized.
"""

import json
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Iterator, Optional, Tuple

from eth_utils import keccak

from common.constants import ADDRESS_SIZE
from common.exceptions import EncodingError

NODE_TYPE_VALUE = 2
NODE_TYPE_EDGE = 4
NODE_TYPE_WITH_PATH_SEPARATOR = 8
NODE_TYPE_WITH_METADATA = 16

PATH_SEPARATOR = ord('/')
PREFIX_MAX_SIZE = 30
OBFUSCATION_KEY_SIZE = 32
VERSION_HASH = keccak(b"mantaray:0.2")[:31]
METADATA_SIZE_BYTES = 2
METADATA_PADDING = b'\n'

ZERO_ADDRESS = bytes(ADDRESS_SIZE)

PersistFn = Callable[[bytes], Awaitable[bytes]]


def _common_prefix(a: bytes, b: bytes) -> bytes:
    size = 0
    for x, y in zip(a, b):
        if x != y:
            break
        size += 1
    return a[:size]


@dataclass
class MantarayFork:
    """Edge from a node to a child, labelled with a path prefix."""
    prefix: bytes
    node: "MantarayNode"

    def serialize(self) -> bytes:
        if self.node.content_address is None:
            raise EncodingError(f"Fork {self.prefix!r} has not been saved")
        data = (
            bytes([self.node.node_type, len(self.prefix)])
            + self.prefix.ljust(PREFIX_MAX_SIZE, b'\x00')
            + self.node.content_address
        )
        if self.node.is_with_metadata():
            data += _serialize_metadata(self.node.metadata)
        return data


def _serialize_metadata(metadata: Dict[str, str]) -> bytes:
    encoded = json.dumps(metadata, separators=(',', ':'), ensure_ascii=False).encode('utf-8')
    remainder = (len(encoded) + METADATA_SIZE_BYTES) % OBFUSCATION_KEY_SIZE
    padding = 0 if remainder == 0 else OBFUSCATION_KEY_SIZE - remainder
    size = len(encoded) + padding
    if size > 0xFFFF:
        raise EncodingError(f"Fork metadata too large: {size} bytes")
    return size.to_bytes(METADATA_SIZE_BYTES, 'big') + encoded + METADATA_PADDING * padding


class MantarayNode:
    """A trie node; the root node of a manifest is created empty."""

    def __init__(self):
        self.node_type = 0
        self.entry: Optional[bytes] = None
        self.metadata: Optional[Dict[str, str]] = None
        self.forks: Dict[int, MantarayFork] = {}
        self.content_address: Optional[bytes] = None
        self.obfuscation_key = bytes(OBFUSCATION_KEY_SIZE)

    def is_value(self) -> bool:
        return bool(self.node_type & NODE_TYPE_VALUE)

    def is_edge(self) -> bool:
        return bool(self.node_type & NODE_TYPE_EDGE)

    def is_with_metadata(self) -> bool:
        return bool(self.node_type & NODE_TYPE_WITH_METADATA)

    def is_with_path_separator(self) -> bool:
        return bool(self.node_type & NODE_TYPE_WITH_PATH_SEPARATOR)

    def _make(self, flag: int) -> None:
        self.node_type |= flag

    def _update_path_separator(self, path: bytes) -> None:
        if PATH_SEPARATOR in path[1:]:
            self.node_type |= NODE_TYPE_WITH_PATH_SEPARATOR
        else:
            self.node_type &= ~NODE_TYPE_WITH_PATH_SEPARATOR

    def set_entry(self, entry: bytes) -> None:
        if len(entry) != ADDRESS_SIZE:
            raise EncodingError(f"Expected {ADDRESS_SIZE} byte entry, got {len(entry)} bytes")
        self.entry = bytes(entry)
        if self.entry != ZERO_ADDRESS:
            self._make(NODE_TYPE_VALUE)
        self.content_address = None

    def set_metadata(self, metadata: Dict[str, str]) -> None:
        self.metadata = dict(metadata)
        self._make(NODE_TYPE_WITH_METADATA)
        self.content_address = None

    def add_fork(self, path: bytes, entry: bytes, metadata: Optional[Dict[str, str]] = None) -> None:
        """
        Insert ``path`` pointing at ``entry``, splitting shared prefixes.

        Args:
            path: Path bytes, e.g. ``b'/index.html'``
            entry: 32-byte reference the path resolves to
            metadata: Optional string map stored with the entry
        """
        self.content_address = None
        if not path:
            self.set_entry(entry)
            if metadata:
                self.set_metadata(metadata)
            return

        fork = self.forks.get(path[0])
        if fork is None:
            child = MantarayNode()
            if len(path) > PREFIX_MAX_SIZE:
                prefix, rest = path[:PREFIX_MAX_SIZE], path[PREFIX_MAX_SIZE:]
                child.add_fork(rest, entry, metadata)
                child._update_path_separator(prefix)
                self.forks[path[0]] = MantarayFork(prefix, child)
                self._make(NODE_TYPE_EDGE)
                return
            child.set_entry(entry)
            if metadata:
                child.set_metadata(metadata)
            child._update_path_separator(path)
            self.forks[path[0]] = MantarayFork(path, child)
            self._make(NODE_TYPE_EDGE)
            return

        common = _common_prefix(fork.prefix, path)
        rest = fork.prefix[len(common):]
        child = fork.node
        if rest:
            child = MantarayNode()
            child.forks[rest[0]] = MantarayFork(rest, fork.node)
            child._make(NODE_TYPE_EDGE)
            if len(path) == len(common):
                child._make(NODE_TYPE_VALUE)
        child._update_path_separator(path)
        child.add_fork(path[len(common):], entry, metadata)
        self.forks[path[0]] = MantarayFork(common, child)
        self._make(NODE_TYPE_EDGE)

    def serialize(self) -> bytes:
        """
        Binary form: obfuscation key | version hash | ref size | entry |
        fork bitmap | fork records in byte order.
        """
        entry = self.entry if self.entry is not None else ZERO_ADDRESS
        bitmap = 0
        for first_byte in self.forks:
            bitmap |= 1 << first_byte
        fork_records = b''.join(self.forks[key].serialize() for key in sorted(self.forks))
        data = (
            self.obfuscation_key
            + VERSION_HASH
            + bytes([len(entry)])
            + entry
            + bitmap.to_bytes(32, 'little')
            + fork_records
        )
        return self._obfuscate(data)

    def _obfuscate(self, data: bytes) -> bytes:
        key = self.obfuscation_key
        if not any(key):
            return data
        head, body = data[:OBFUSCATION_KEY_SIZE], data[OBFUSCATION_KEY_SIZE:]
        return head + bytes(b ^ key[i % len(key)] for i, b in enumerate(body))

    async def save(self, persist: PersistFn) -> bytes:
        """
        Persist every unsaved node, children first.

        Args:
            persist: Coroutine taking serialized node bytes and returning the
                32-byte reference the storage node assigned

        Returns:
            Reference of this (root) node
        """
        for key in sorted(self.forks):
            child = self.forks[key].node
            if child.content_address is None:
                await child.save(persist)
        reference = await persist(self.serialize())
        if len(reference) != ADDRESS_SIZE:
            raise EncodingError(f"Expected {ADDRESS_SIZE} byte reference, got {len(reference)} bytes")
        self.content_address = bytes(reference)
        return self.content_address

    def paths(self, prefix: bytes = b'') -> Iterator[Tuple[bytes, bytes, Dict[str, str]]]:
        """Yield ``(path, entry, metadata)`` for every node that carries an entry."""
        if self.entry is not None:
            yield prefix, self.entry, dict(self.metadata or {})
        for key in sorted(self.forks):
            fork = self.forks[key]
            yield from fork.node.paths(prefix + fork.prefix)
