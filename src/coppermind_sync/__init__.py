"""
Coppermind Sync - replication engine for the Coppermind local-first workspace.
This package reconciles the embedded SQLite store on a device with an optional
remote relational database that acts as the cross-device synchronization point.

This version uses synchronous operations.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("coppermind-sync")
except PackageNotFoundError:
    __version__ = "0.3.0"
