# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.15
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/appbackup/storage/__init__.py

"""
Storage layer for appbackup - local snapshot directories and data movement
to and from the appliance.

This module provides:
- Snapshot directory allocation, resolution and promotion
- The remote execution channel (SSH)
- rsync transfers
"""

from .remote import RemoteChannel, RemoteHost, RemoteResult, check_host
from .rsync import RsyncTransfer
from .snapshots import Snapshot, SnapshotDirectoryManager

__all__ = [
    'RemoteChannel', 'RemoteHost', 'RemoteResult', 'check_host',
    'RsyncTransfer',
    'Snapshot', 'SnapshotDirectoryManager',
]
