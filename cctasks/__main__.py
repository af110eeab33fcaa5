"""Entry point for cctasks when run as a module.

This allows the package to be run with: python -m cctasks
"""

import sys

from cctasks.cli import main

if __name__ == "__main__":
    sys.exit(main())
