# main.py
import sys
from pathlib import Path

# Run straight from a checkout without installing.
sys.path.insert(0, str(Path(__file__).resolve().parent / "src"))

from musicbox.cli import main

if __name__ == "__main__":
    sys.exit(main())
