"""Deterministic rollout bucketing.

Maps a (flag key, subject id) pair to a stable bucket in [0, 100). Hashing
the flag key together with the subject keeps bucket membership uncorrelated
across flags.
"""

from __future__ import annotations

import hashlib
from typing import Optional

BUCKET_COUNT = 100
# Returned for subjects without an id; never below any percentage < 100
UNBUCKETED = BUCKET_COUNT


def compute_bucket(flag_key: str, subject_id: Optional[str], salt: str = "") -> int:
    """Return the subject's bucket for ``flag_key``.

    Args:
        flag_key: Immutable key of the flag being evaluated.
        subject_id: Stable subject identifier (usually a user id).
        salt: Optional seed separating independent gates on the same flag.

    Returns:
        An integer in [0, 100), or ``UNBUCKETED`` when ``subject_id`` is empty.
    """
    if not subject_id:
        return UNBUCKETED

    seed = f"{salt}:{flag_key}:{subject_id}" if salt else f"{flag_key}:{subject_id}"
    digest = hashlib.md5(seed.encode("utf-8")).hexdigest()  # nosec B324 - stable rollout hashing
    return int(digest[:8], 16) % BUCKET_COUNT


def in_rollout(bucket: int, percentage: int) -> bool:
    """Whether ``bucket`` falls inside a rollout of ``percentage``.

    A 100% rollout includes everyone, unbucketed subjects too.
    """
    if percentage >= BUCKET_COUNT:
        return True
    return bucket < percentage
