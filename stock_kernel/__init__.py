"""
Stock Kernel - stock-movement core

An append-only, conserving stock transfer system with:
- Atomic per-row inventory decrements (no negative stock)
- All-or-nothing transfer batches
- Send -> confirm/reject -> return protocol between hubs, small branches and riders
- Idempotent transfer requests
"""

__version__ = "0.1.0"
