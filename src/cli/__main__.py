"""Allow ``python -m src.cli`` execution."""

import sys

from src.cli.new_releases import main

sys.exit(main())
