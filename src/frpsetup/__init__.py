"""Installer and process supervisor for the frp server/client binaries."""

__version__ = "0.1.0"
