import os
import tempfile

# The database module reads DATABASE_URL at import time.
_db_dir = tempfile.mkdtemp(prefix="hostsurvey-test-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{os.path.join(_db_dir, 'test.db')}")
