"""Root pytest configuration: put src/ on sys.path so securepass imports without an install."""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent / "src"))
