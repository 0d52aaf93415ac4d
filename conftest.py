"""Pytest configuration.

Ensures that the repository root is importable so that the ``actionsum``
package can be resolved when tests are executed without an editable install.
Log output from the watchers goes to ``log/`` under the repository root.
"""

import os
import sys
from pathlib import Path

# Add the repository root (the directory containing this file) to ``sys.path``
# if it is not already present.
ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("ACTIONSUM_LOG_DIR", str(ROOT / "log"))
