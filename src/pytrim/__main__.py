"""Allow ``python -m pytrim``."""

import sys

from pytrim.cli import main

sys.exit(main())
