"""
Entry point for the studyforge CLI.

Run with:
    python main.py --help
    python main.py lesson notes.txt
"""
import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from src.cli.main import run

if __name__ == "__main__":
    run()
