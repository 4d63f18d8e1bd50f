"""Entry point for ``python -m leave_ledger``."""

import sys

from leave_ledger.cli import main

if __name__ == "__main__":
    sys.exit(main())
