"""
Paid asynchronous virtual try-on orchestrator.
"""

__version__ = "0.1.0"
