"""``python -m ffhuman``."""

import sys

from .cli import main

sys.exit(main())
