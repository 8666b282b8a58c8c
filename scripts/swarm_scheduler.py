#!/usr/bin/env python3
"""Swarm scheduler daemon.

Thin wrapper around ``swarm.cli`` so the scheduler can be run from a
checkout without installing it:

    python scripts/swarm_scheduler.py --simulate --once
    python scripts/swarm_scheduler.py --daemon --host-url http://localhost:8790
"""

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from swarm.cli import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main())
