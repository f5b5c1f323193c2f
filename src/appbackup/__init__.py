# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.14
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/appbackup/__init__.py

"""appbackup - snapshot backups of a remote appliance."""
