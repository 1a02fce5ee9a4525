import os
import tempfile

# Config and scheduler state must never land in the real user profile during tests.
os.environ.setdefault("CHATLENS_APPDATA_DIR", tempfile.mkdtemp(prefix="chatlens-tests-"))
