"""QUIC transport building blocks: ranges, receive state, rate metering, congestion control, loss recovery, CIDs and linked lists."""

__version__ = "0.1.0"
__all__ = ["cc", "errors", "linklist", "local_cid", "loss", "ranges", "rate", "recvstate"]