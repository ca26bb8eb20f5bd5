from screensync.services import errors

REASON_LABELS = {
    errors.BASELINE_NOT_CONFIGURED: "no baseline playlist configured",
    errors.BASELINE_FETCH_ERROR: "baseline playlist could not be loaded",
    errors.BASELINE_PLAYLIST_EMPTY: "baseline playlist has no items",
    errors.REMOTE_SOURCE_FETCH_FAILED: "device state could not be read",
    errors.CREATE_PLAYLIST_FAILED: "screen playlist could not be created",
    errors.ASSIGN_PLAYLIST_FAILED: "playlist could not be assigned to the device",
    errors.PLAYLIST_WRITE_FAILED: "playlist items could not be written",
    errors.PLAYLIST_VERIFY_FAILED: "playlist could not be verified",
    errors.PLAYLIST_EMPTY_AFTER_WRITE: "playlist empty - repair needed",
    errors.DEVICE_UNLINKED: "screen is not linked to a device",
    errors.SCREEN_NOT_FOUND: "screen not found",
    errors.SCREEN_BUSY: "screen is already being repaired",
    errors.SOURCE_MISMATCH: "device is not playing its playlist",
    errors.REMOTE_TOKEN_NOT_CONFIGURED: "remote platform token missing",
    "empty": "playlist empty - repair needed",
    "offline": "device offline",
    "no_screenshot": "no screenshot available",
    "no_content_detected": "screen looks blank",
    "timeout": "proof timed out",
    "ok": "content confirmed on screen",
}


def reason_label(reason: str | None) -> str | None:
    if not reason:
        return None
    return REASON_LABELS.get(reason, reason.replace("_", " ").lower())
