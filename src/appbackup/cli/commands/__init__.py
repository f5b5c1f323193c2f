# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.20
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/appbackup/cli/commands/__init__.py

"""
Command handlers for appbackup CLI operations.

This package contains the logic behind the CLI commands, separated from
the CLI interface layer.
"""
