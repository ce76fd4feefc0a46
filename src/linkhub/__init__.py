"""linkhub: device communication and state reconciliation for smart-home bridges."""

__version__ = "0.4.0"
