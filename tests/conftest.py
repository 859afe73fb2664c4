import os
import sys
import tempfile

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

# Module-level stores read these on import, so they must be set before any test module loads gharsewa.
_TEST_DATA_DIR = tempfile.mkdtemp(prefix="gharsewa-tests-")
os.environ["DIRECTORY_BACKEND"] = "sqlite"
os.environ["DIRECTORY_DB_PATH"] = os.path.join(_TEST_DATA_DIR, "directory.sqlite3")
os.environ["DIRECTORY_SEED_DEMO"] = "false"
