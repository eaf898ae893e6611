"""
                Table Intelligence Service

QR-driven restaurant table management: scan tracking, table occupancy,
staff alerts and push-notification acknowledgment.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
