"""Allow ``python -m csvtail``."""

import sys

from csvtail.cli import main

sys.exit(main())
