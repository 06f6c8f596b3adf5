import os
import sys

# Ensure project root is on sys.path so `import voxflow` works when running tests
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

# Keep test runs quiet and deterministic regardless of a developer's .env.
os.environ.setdefault("VOXFLOW_DEBUG", "0")
os.environ.setdefault("VOXFLOW_LOG_LEVEL", "WARNING")
