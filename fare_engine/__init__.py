"""
BebaX fare engine.

Prices cargo trips from two GPS points and a vehicle class, and tracks the
free-loading window that turns into a per-minute demurrage fee.
"""

__version__ = "2.0.0"
