# Fatal for the screen being processed.
BASELINE_NOT_CONFIGURED = "BASELINE_NOT_CONFIGURED"
BASELINE_FETCH_ERROR = "BASELINE_FETCH_ERROR"
BASELINE_PLAYLIST_EMPTY = "BASELINE_PLAYLIST_EMPTY"
REMOTE_SOURCE_FETCH_FAILED = "REMOTE_SOURCE_FETCH_FAILED"
CREATE_PLAYLIST_FAILED = "CREATE_PLAYLIST_FAILED"
ASSIGN_PLAYLIST_FAILED = "ASSIGN_PLAYLIST_FAILED"
PLAYLIST_WRITE_FAILED = "PLAYLIST_WRITE_FAILED"
PLAYLIST_VERIFY_FAILED = "PLAYLIST_VERIFY_FAILED"
PLAYLIST_EMPTY_AFTER_WRITE = "PLAYLIST_EMPTY_AFTER_WRITE"
DEVICE_UNLINKED = "DEVICE_UNLINKED"
SCREEN_NOT_FOUND = "SCREEN_NOT_FOUND"
SCREEN_BUSY = "SCREEN_BUSY"

# Surfaced on the result but the pass keeps going.
SOURCE_MISMATCH = "SOURCE_MISMATCH"

REMOTE_TOKEN_NOT_CONFIGURED = "REMOTE_TOKEN_NOT_CONFIGURED"
UNEXPECTED_ERROR = "UNEXPECTED_ERROR"


class ReconcileError(Exception):
    def __init__(self, reason: str, message: str | None = None):
        super().__init__(message or reason)
        self.reason = reason
        self.message = message or reason


class BaselineError(ReconcileError):
    pass


class ScreenBusyError(ReconcileError):
    def __init__(self, screen_id: str):
        super().__init__(SCREEN_BUSY, f"Screen {screen_id} is already being reconciled")
        self.screen_id = screen_id


class ScreenNotFoundError(ReconcileError):
    def __init__(self, screen_id: str):
        super().__init__(SCREEN_NOT_FOUND, f"Screen {screen_id} not found")
        self.screen_id = screen_id
