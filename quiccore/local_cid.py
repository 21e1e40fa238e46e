"""Connection IDs issued by the local endpoint and their delivery to the peer."""

from __future__ import annotations

import hashlib
import hmac
import struct
from dataclasses import dataclass, field, replace
from enum import Enum

from .errors import ProtocolViolationError

__all__ = [
    "LocalCIDState",
    "CIDPlaintext",
    "LocalCID",
    "CIDEncryptor",
    "LocalCIDSet",
    "DEFAULT_CAPACITY",
    "MAX_PATH_ID",
    "STATELESS_RESET_TOKEN_LEN",
]

DEFAULT_CAPACITY = 8
"""Number of CID slots kept by a set."""

MAX_PATH_ID = 255
"""Path IDs at or above this value are never issued."""

STATELESS_RESET_TOKEN_LEN = 16


class LocalCIDState(Enum):
    """Delivery state of a locally issued CID."""

    IDLE = "idle"
    PENDING = "pending"
    INFLIGHT = "inflight"
    DELIVERED = "delivered"


@dataclass
class CIDPlaintext:
    """The values encoded into a connection ID."""

    master_id: int = 0
    path_id: int = 0
    thread_id: int = 0
    node_id: int = 0


@dataclass
class LocalCID:
    """One slot of a CID set; ``sequence`` is None while the slot holds no CID."""

    cid: bytes = b""
    sequence: int | None = None
    state: LocalCIDState = LocalCIDState.IDLE
    stateless_reset_token: bytes = b""


@dataclass(frozen=True)
class CIDEncryptor:
    """Keyed, reversible encoding of CID plaintexts into 8- or 16-byte CIDs.

    A 16-byte CID carries ``node_id``; an 8-byte CID does not.
    """

    key: bytes = b""
    block_size: int = 8

    def __post_init__(self) -> None:
        if self.block_size not in (8, 16):
            raise ValueError("block_size must be 8 or 16")

    def _keystream(self) -> bytes:
        return hmac.new(self.key, b"cid", hashlib.sha256).digest()[: self.block_size]

    def generate_reset_token(self, cid: bytes) -> bytes:
        """Return the stateless reset token bound to ``cid``."""
        digest = hmac.new(self.key, b"reset" + bytes(cid), hashlib.sha256).digest()
        return digest[:STATELESS_RESET_TOKEN_LEN]

    def encrypt_cid(self, plaintext: CIDPlaintext) -> tuple[bytes, bytes]:
        """Return ``(cid, stateless_reset_token)`` for ``plaintext``."""
        if not 0 <= plaintext.master_id <= 0xFFFFFFFF:
            raise ValueError("master_id out of range")
        if not 0 <= plaintext.thread_id <= 0xFFFFFF:
            raise ValueError("thread_id out of range")
        if not 0 <= plaintext.path_id <= 0xFF:
            raise ValueError("path_id out of range")
        tail = struct.pack(
            ">II", plaintext.master_id, (plaintext.thread_id << 8) | plaintext.path_id
        )
        if self.block_size == 16:
            if not 0 <= plaintext.node_id <= 0xFFFFFFFFFFFFFFFF:
                raise ValueError("node_id out of range")
            encoded = struct.pack(">Q", plaintext.node_id) + tail
        else:
            encoded = tail
        cid = bytes(a ^ b for a, b in zip(encoded, self._keystream()))
        return cid, self.generate_reset_token(cid)

    def decrypt_cid(self, cid: bytes) -> CIDPlaintext:
        """Recover the plaintext from a CID produced by :meth:`encrypt_cid`."""
        if len(cid) != self.block_size:
            raise ValueError(f"CID must be {self.block_size} bytes")
        raw = bytes(a ^ b for a, b in zip(cid, self._keystream()))
        node_id = 0
        if self.block_size == 16:
            (node_id,) = struct.unpack(">Q", raw[:8])
            raw = raw[8:]
        master_id, rest = struct.unpack(">II", raw)
        return CIDPlaintext(
            master_id=master_id, path_id=rest & 0xFF, thread_id=rest >> 8, node_id=node_id
        )


class LocalCIDSet:
    """The CIDs offered to the peer.

    PENDING entries are kept at the front of the active slots, in FIFO order.
    """

    def __init__(
        self,
        encryptor: CIDEncryptor | None = None,
        plaintext: CIDPlaintext | None = None,
        capacity: int = DEFAULT_CAPACITY,
        max_path_id: int = MAX_PATH_ID,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._encryptor = encryptor
        self._max_path_id = max_path_id
        self._size = 1
        self._cids = [LocalCID() for _ in range(capacity)]
        if plaintext is not None:
            if plaintext.path_id != 0:
                raise ValueError("initial plaintext must have path_id 0")
            self._plaintext = replace(plaintext)
        else:
            self._plaintext = CIDPlaintext()

        # the first CID reaches the peer through the handshake itself
        self._cids[0].sequence = 0
        if encryptor is not None:
            if plaintext is None:
                raise ValueError("a plaintext is required when CIDs are encrypted")
            self._generate(0)
        self._cids[0].state = LocalCIDState.DELIVERED

    @property
    def cids(self) -> tuple[LocalCID, ...]:
        """The active slots, pending ones first."""
        return tuple(self._cids[: self._size])

    @property
    def size(self) -> int:
        return self._size

    @property
    def capacity(self) -> int:
        return len(self._cids)

    @property
    def plaintext(self) -> CIDPlaintext:
        """The plaintext that the next CID will be generated from."""
        return replace(self._plaintext)

    def has_pending(self) -> bool:
        return self._cids[0].state is LocalCIDState.PENDING

    def _generate(self, idx: int) -> bool:
        if self._encryptor is None or self._plaintext.path_id >= self._max_path_id:
            return False
        cid, token = self._encryptor.encrypt_cid(self._plaintext)
        slot = self._cids[idx]
        slot.cid = cid
        slot.stateless_reset_token = token
        slot.sequence = self._plaintext.path_id
        self._plaintext.path_id += 1
        return True

    def _swap(self, a: int, b: int) -> None:
        self._cids[a], self._cids[b] = self._cids[b], self._cids[a]

    def _mark_pending(self, idx: int) -> None:
        self._cids[idx].state = LocalCIDState.PENDING
        for j in range(idx):
            if self._cids[j].state is not LocalCIDState.PENDING:
                self._swap(idx, j)
                break

    def _mark_delivered(self, idx: int) -> None:
        if self._cids[idx].state is LocalCIDState.PENDING:
            # keep the remaining PENDING entries at the front
            while (
                idx + 1 < self._size
                and self._cids[idx + 1].state is LocalCIDState.PENDING
            ):
                self._swap(idx, idx + 1)
                idx += 1
        self._cids[idx].state = LocalCIDState.DELIVERED

    def _find(self, sequence: int) -> int | None:
        return next(
            (i for i, c in enumerate(self._cids[: self._size]) if c.sequence == sequence),
            None,
        )

    def set_size(self, size: int) -> bool:
        """Grow the number of active slots, filling them with new CIDs.

        Returns True if any CID is pending delivery.
        """
        if size > len(self._cids):
            raise ValueError("size exceeds capacity")
        if size < self._size:
            raise ValueError("size cannot shrink")
        for slot in self._cids[self._size : size]:
            slot.state = LocalCIDState.IDLE
        self._size = size

        is_pending = False
        for i in range(size):
            if self._cids[i].state is not LocalCIDState.IDLE:
                continue
            if not self._generate(i):
                break
            self._mark_pending(i)
            is_pending = True
        return is_pending

    def on_sent(self, num_sent: int) -> None:
        """Mark the first ``num_sent`` pending CIDs as in flight."""
        if not 0 <= num_sent <= self._size:
            raise ValueError("num_sent out of range")
        for slot in self._cids[:num_sent]:
            if slot.state is not LocalCIDState.PENDING:
                raise ValueError("only pending CIDs can be sent")
            slot.state = LocalCIDState.INFLIGHT
        for i in range(num_sent, self._size):
            if self._cids[i].state is not LocalCIDState.PENDING:
                break
            self._swap(i, i - num_sent)

    def on_acked(self, sequence: int) -> None:
        """Mark the CID with ``sequence`` as delivered, if it is still held."""
        idx = self._find(sequence)
        if idx is not None:
            self._mark_delivered(idx)

    def on_lost(self, sequence: int) -> bool:
        """Queue the CID for resending; returns True if any CID is pending."""
        idx = self._find(sequence)
        if idx is None or self._cids[idx].state is LocalCIDState.DELIVERED:
            return self.has_pending()
        self._mark_pending(idx)
        return True

    def retire(self, sequence: int) -> bool:
        """Retire the CID the peer asked to drop and issue a replacement.

        Returns True if any CID is pending.  Raises ProtocolViolationError if
        the peer retires the only CID it holds.
        """
        retired_at: int | None = None
        becomes_empty = True
        for i, slot in enumerate(self._cids[: self._size]):
            if slot.state is LocalCIDState.IDLE:
                continue
            if slot.sequence == sequence:
                retired_at = i
            else:
                becomes_empty = False

        if retired_at is None:
            return self.has_pending()
        if becomes_empty:
            raise ProtocolViolationError(message="peer retired its only connection ID")

        slot = self._cids[retired_at]
        slot.state = LocalCIDState.IDLE
        slot.sequence = None

        for i in range(retired_at + 1, self._size):
            if self._cids[i].state is not LocalCIDState.PENDING:
                break
            self._swap(i, retired_at)
            retired_at = i

        if self._generate(retired_at):
            self._mark_pending(retired_at)
            return True
        return self.has_pending()