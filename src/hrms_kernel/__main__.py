"""Entry point for ``python -m hrms_kernel``."""

import sys

from hrms_kernel.cli import main

if __name__ == "__main__":
    sys.exit(main())
