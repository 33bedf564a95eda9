"""Allow ``python -m ffwrap``."""

import sys

from ffwrap.cli import main

sys.exit(main())
