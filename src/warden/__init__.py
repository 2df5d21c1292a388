"""Warden: suspicious-member detection and verification case management for Discord."""

__version__ = "0.1.0"
