#!/usr/bin/env python3
"""
Local entrypoint: `python3 server.py` starts the simulator API on
TRENCHES_HOST:TRENCHES_PORT (default 127.0.0.1:8000).
"""

from trenches_sim.main import run


if __name__ == "__main__":
    run()
