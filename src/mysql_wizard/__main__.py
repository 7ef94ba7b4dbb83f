# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""CLI entry point for mysql-wizard (python -m mysql_wizard).

Usage:
    mysql-wizard --help
    mysql-wizard config
    mysql-wizard ping
    mysql-wizard --url sqlite:/tmp/dev.db query "SELECT * FROM users"
"""

from .cli import main

if __name__ == "__main__":
    main()
