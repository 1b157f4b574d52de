# orderhub/__init__.py
"""
orderhub: order lifecycle orchestration backend.

- derives one canonical status per order from voucher / tracking / invoice / platform signals
- fans bulk provider operations out through a per-order idempotency guard
- refreshes courier tracking in pages, on a timer or on demand
"""

__version__ = "1.0.0"
