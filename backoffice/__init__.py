"""
                Restaurant Back-Office Order Engine

Table order lifecycle and payment reconciliation for the back-office:
durable per-table carts, remote order synchronization, the order
status machine and polling-based payment confirmation.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
