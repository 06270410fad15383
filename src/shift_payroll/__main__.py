"""Entry point for ``python -m shift_payroll``."""

import sys

from shift_payroll.cli import main

if __name__ == "__main__":
    sys.exit(main())
