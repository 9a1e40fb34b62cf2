"""Allow running as ``python -m pearanoid``."""

from __future__ import annotations

import sys

from pearanoid.main import main

sys.exit(main())
