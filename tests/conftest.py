import os
import sys
from pathlib import Path

os.environ.setdefault("CONTRACT_ADDRESS", "0x" + "ab" * 20)
os.environ.setdefault("AGENT_PRIVATE_KEY", "0x" + "11" * 32)
os.environ.setdefault("RPC_URL", "http://localhost:8545")

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))
