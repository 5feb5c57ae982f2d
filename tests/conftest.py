"""
Test configuration and fixtures
"""
import os
import sys
from pathlib import Path

# Add project root and src to Python path
project_root = Path(__file__).parent.parent
src_path = project_root / "src"

sys.path.insert(0, str(project_root))
sys.path.insert(0, str(src_path))

# Deterministic development proving key instead of a generated one
os.environ.setdefault("ZKR_NETWORK", "testnet")
os.environ.setdefault("ZKR_PROOF_BACKEND", "dev")
os.environ.setdefault("ZKR_DEV_PROVING_KEY", "zkrecovery-test-proving-key-0001")

import pytest  # noqa: E402,F401
