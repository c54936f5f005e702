"""Submission number generation.

Numbers read ``<prefix>_<yyyyMMddHHmmss>_<seq>`` where ``seq`` is the
three-digit, one-based count of submissions created that day. Each
resubmission appends ``_R1`` or increments an existing ``_R<n>`` suffix.
"""

from datetime import datetime
import re

RESUBMISSION_SUFFIX = re.compile(r"^(?P<base>.+)_R(?P<n>\d+)$")


def generate_submission_no(created_at: datetime, sequence: int, prefix: str = "LHD") -> str:
    """Build a new submission number.

    Args:
        created_at: Creation time; formatted to the second
        sequence: One-based sequence number within the day

    Examples:
        >>> from datetime import datetime
        >>> generate_submission_no(datetime(2025, 1, 1, 12, 0, 0), 1)
        'LHD_20250101120000_001'
    """
    if sequence < 1:
        raise ValueError("sequence must be positive")
    return f"{prefix}_{created_at.strftime('%Y%m%d%H%M%S')}_{sequence:03d}"


def resubmission_no(submission_no: str) -> str:
    """Number for the resubmission of ``submission_no``.

    Examples:
        >>> resubmission_no("LHD_20250101120000_001")
        'LHD_20250101120000_001_R1'
        >>> resubmission_no("LHD_20250101120000_001_R1")
        'LHD_20250101120000_001_R2'
    """
    match = RESUBMISSION_SUFFIX.match(submission_no)
    if match is None:
        return f"{submission_no}_R1"
    return f"{match.group('base')}_R{int(match.group('n')) + 1}"


def resubmission_count(submission_no: str) -> int:
    """How many times the chain leading to ``submission_no`` was resubmitted."""
    match = RESUBMISSION_SUFFIX.match(submission_no)
    return int(match.group("n")) if match else 0


__all__ = ["generate_submission_no", "resubmission_no", "resubmission_count"]
