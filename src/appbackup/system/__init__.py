# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.14
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/appbackup/system/__init__.py

"""System utilities: errors, logging and local command execution."""
