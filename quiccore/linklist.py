"""Intrusive circular doubly linked list."""

from __future__ import annotations

from typing import Any, Iterator

__all__ = ["LinkNode"]


class LinkNode:
    """A node of a circular list; an unlinked node points to itself.

    A node used as a list head carries no meaningful value; iterating over
    it yields the other nodes in order.
    """

    def __init__(self, value: Any = None) -> None:
        self.value = value
        self.prev: LinkNode = self
        self.next: LinkNode = self

    def is_linked(self) -> bool:
        return self.prev is not self

    def insert(self, node: LinkNode) -> None:
        """Insert ``node`` right after this node."""
        if node.is_linked():
            raise ValueError("node is already linked")
        node.prev = self
        node.next = self.next
        node.prev.next = node
        node.next.prev = node

    def unlink(self) -> None:
        """Remove this node from whatever list it is on."""
        self.prev.next = self.next
        self.next.prev = self.prev
        self.prev = self.next = self

    def insert_list(self, other: LinkNode) -> None:
        """Move every node of the list headed by ``other`` to just after this node."""
        if not other.is_linked():
            return
        other.next.prev = self
        other.prev.next = self.next
        self.next.prev = other.prev
        self.next = other.next
        other.prev = other.next = other

    def __iter__(self) -> Iterator[LinkNode]:
        """Yield the nodes after this one; the yielded node may be unlinked."""
        node = self.next
        while node is not self:
            following = node.next
            yield node
            node = following

    def __repr__(self) -> str:
        return f"LinkNode({self.value!r}, linked={self.is_linked()})"