#!/usr/bin/env python3
"""
Run the certstream relay without installing the package.
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from certrelay.cli.commands.run import run_command

if __name__ == "__main__":
    run_command()
