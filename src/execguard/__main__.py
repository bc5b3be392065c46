"""Allow ``python -m execguard``."""

import sys

from .cli import main

sys.exit(main())
