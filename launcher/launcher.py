#!/usr/bin/env python3
"""
ARK: Survival Ascended dedicated server launcher

    python launcher.py setup --root D:/asa-server
    python launcher.py start --root D:/asa-server --session-name "My Server" --mods 928102,930494
    python launcher.py prefetch --root D:/asa-server --mods 928102
    python launcher.py update --root D:/asa-server --validate
"""

import sys
from asa_launcher.cli import main

if __name__ == "__main__":
    sys.exit(main())
