"""
Downloader error types and yt-dlp stderr classifier.
"""
from typing import Optional


class DownloaderError(Exception):
    """Base error for extraction, conversion and streaming failures."""
    status_code = 500

    def __init__(self, message: str = ""):
        self.message = message
        super().__init__(message)


class EmptyUrlError(DownloaderError):
    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message or "Missing URL")


class PasswordRequiredError(DownloaderError):
    """Video is protected by a password and none was given."""
    status_code = 401

    def __init__(self, message: str = ""):
        super().__init__(message or "This video is protected by a password")


class WrongPasswordError(DownloaderError):
    status_code = 403

    def __init__(self, message: str = ""):
        super().__init__(message or "Wrong password")


class PlaylistConversionError(DownloaderError):
    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message or "Conversion of playlists is not supported")


class InvalidProtocolConversionError(DownloaderError):
    """Media delivered over a protocol ffmpeg cannot convert from a single URL."""

    def __init__(self, protocol: str, message: str = ""):
        self.protocol = protocol
        super().__init__(message or f"Conversion of {protocol} is not supported")


class RemuxDisabledError(DownloaderError):
    def __init__(self, message: str = ""):
        super().__init__(message or "You need to enable remux mode to merge two formats")


class RemuxError(DownloaderError):
    """Remux asked for something other than one video and one audio URL."""

    def __init__(self, message: str = ""):
        super().__init__(message or "Remux requires exactly two formats")


class ExtractionError(DownloaderError):
    """yt-dlp could not extract the requested format."""
    status_code = 400

    def __init__(self, message: str = "", stderr: Optional[str] = None):
        self.stderr = stderr
        super().__init__(message or "yt-dlp extraction failed")


class ProcessSpawnError(DownloaderError):
    def __init__(self, message: str = ""):
        super().__init__(message or "Could not start conversion process")


class UpstreamError(DownloaderError):
    """Upstream media server refused or failed the proxied request."""
    status_code = 502

    def __init__(self, message: str = ""):
        super().__init__(message or "Upstream request failed")


PASSWORD_REQUIRED_MARKERS = (
    "protected by a password",
    "--video-password",
)
WRONG_PASSWORD_MARKER = "wrong password"


def classify_ytdlp_error(stderr: str) -> DownloaderError:
    """Map yt-dlp stderr to a downloader error"""
    low = (stderr or "").lower()

    if WRONG_PASSWORD_MARKER in low:
        return WrongPasswordError()
    if any(marker in low for marker in PASSWORD_REQUIRED_MARKERS):
        return PasswordRequiredError()

    lines = [line for line in (stderr or "").strip().splitlines() if line.strip()]
    summary = lines[-1][:400] if lines else "yt-dlp extraction failed"
    return ExtractionError(summary, stderr=stderr)
