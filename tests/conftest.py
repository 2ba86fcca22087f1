"""Pytest configuration for the flowc test suite."""

import sys
from pathlib import Path

# Add project root to path for flowc imports
sys.path.insert(0, str(Path(__file__).parent.parent))
