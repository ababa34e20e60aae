# Ensure 'backend/' is on sys.path so 'import app.*' works
# even when pytest is started from the repository root.
from pathlib import Path
import sys

_BACKEND_DIR = Path(__file__).resolve().parent
if str(_BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(_BACKEND_DIR))
