"""
Attendance reconciliation and sync engine.
"""

__version__ = "1.0.0"
