# SPDX-FileCopyrightText: 2025 Marco Ricci <software@the13thletter.info>
#
# SPDX-License-Identifier: Zlib

"""sitepw internals.

Warning:
    Non-public package (implementation detail), provided for didactical
    and educational purposes only. Subject to change without notice,
    including removal.

"""

import sitepw

__all__ = ()

PROG_NAME = sitepw.__distribution_name__
VERSION = sitepw.__version__
AUTHOR = sitepw.__author__
