"""Module entrypoint.

Allows:
    python -m crashprobe
"""

from __future__ import annotations

from crashprobe.server.probe_server import main

if __name__ == "__main__":
    main()
