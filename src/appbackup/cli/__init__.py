# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.20
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/appbackup/cli/__init__.py

"""Command Line Interface package for appbackup."""

from .main import cli_main as main, app

__all__ = ['main', 'app']
