"""Signature-bound voter registration and on-chain voting backend."""

__version__ = "0.1.0"
