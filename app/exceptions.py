"""
Domain exceptions

Skip conditions in the digest batch (opted out, already sent, no email) are
reported as results, never raised.
"""


class InsightsError(Exception):
    """Base class for insight and digest errors"""


class DigestConfigError(InsightsError):
    """A required secret or provider key is not configured"""


class CafeNotFoundError(InsightsError):
    """The requested café does not exist"""

    def __init__(self, cafe_id: str):
        super().__init__(f"Cafe not found: {cafe_id}")
        self.cafe_id = cafe_id


class ReviewLoadError(InsightsError):
    """Reviews or competitor snapshots could not be loaded"""

