"""
ERRORS - Failure taxonomy for the detection & governance engine

InputError            -> bad inbound message, scorer answers with zero risk
UpstreamReplyFailure  -> reply generator unavailable, fallback reply used
LedgerWriteConflict   -> stale session commit, caller retries with fresh values
ConfigurationError    -> malformed pattern tables / constants, fatal at startup
"""


class ScamEngineError(Exception):
    """Base class for all engine errors"""


class InputError(ScamEngineError):
    """Inbound message is empty or not a string"""


class UpstreamReplyFailure(ScamEngineError):
    """Reply generator raised or returned nothing usable"""


class LedgerWriteConflict(ScamEngineError):
    """Another turn committed to the same session since it was loaded"""

    def __init__(self, session_id: str, expected_version: int, actual_version: int):
        self.session_id = session_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Session {session_id}: expected version {expected_version}, "
            f"found {actual_version}"
        )


class ConfigurationError(ScamEngineError):
    """Pattern tables or scoring constants are malformed"""
