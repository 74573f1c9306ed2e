"""
Run ID generation.

Run IDs are deterministic hashes of the components that identify a run, so
the same run name and captured window end always map to the same ID and
log lines from one run can be grepped together.
"""
import hashlib
from typing import List


def generate_run_id(components: List[str]) -> str:
    """
    Generate deterministic run ID from components.

    Args:
        components: List of string components to hash
            (e.g., ["trickle", "2025-01-15T00:00:00"])

    Returns:
        32-character hex string (first 32 chars of SHA256 hash)
    """
    combined = "|".join(str(c) for c in components)
    return hashlib.sha256(combined.encode("utf-8")).hexdigest()[:32]
