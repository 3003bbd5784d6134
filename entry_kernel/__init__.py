"""
Entry Kernel - domain core for commercial document entry.

Provides:
- Decimal value helpers with per-step half-up rounding
- Immutable line, document, unit and batch types
- Typed exception hierarchy
- Structured JSON logging
- SQLAlchemy base and engine for the held-draft store
"""

__version__ = "0.1.0"
