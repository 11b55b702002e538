"""
Read access rules for stored analyses
"""
from typing import Optional

from schemas import AnalysisRecord


def can_read(analysis: AnalysisRecord, requester_id: Optional[str]) -> bool:
    """
    Decide whether the requester may read an analysis.

    - Owned analysis: only its exact owner.
    - Anonymous analysis: only unauthenticated requesters. No session-to-analysis
      link is stored, so a signed-in user cannot read anonymous runs, even ones
      they produced before signing in.

    Callers report a denial exactly like a missing analysis.
    """
    if analysis.owner_id is not None:
        return requester_id is not None and requester_id == analysis.owner_id
    return requester_id is None
