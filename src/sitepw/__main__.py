# SPDX-FileCopyrightText: 2025 Marco Ricci <software@the13thletter.info>
#
# SPDX-License-Identifier: Zlib
"""Run [`sitepw.cli.sitepw`][] on import."""

import sys

if __name__ == '__main__':
    from sitepw.cli import sitepw

    sys.exit(sitepw())
