# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.14
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/appbackup/config/__init__.py

"""Configuration loading and validation."""

from .manager import BackupConfig, load_config

__all__ = ['BackupConfig', 'load_config']
