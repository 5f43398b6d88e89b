"""Allow ``python -m acmeissue``."""

import sys

from acmeissue.cli.main import main

sys.exit(main())
