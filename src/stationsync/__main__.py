"""Allow ``python -m stationsync``."""

import sys

from stationsync.sync.run import main

sys.exit(main())
