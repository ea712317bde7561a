"""Notification service for the sav3 platform."""

__version__ = "1.0.0"
