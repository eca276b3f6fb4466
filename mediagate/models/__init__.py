from .internal import MediaRequest, ResolvedPlan, ResolvedVideo, SeekRange, Strategy, StreamAction
from .outcome import MissingUrl, Outcome, PasswordChallenge, Redirect, StreamHandle, Streamed, UserError
from .request import DownloadParams

__all__ = [
    "DownloadParams",
    "MediaRequest",
    "MissingUrl",
    "Outcome",
    "PasswordChallenge",
    "Redirect",
    "ResolvedPlan",
    "ResolvedVideo",
    "SeekRange",
    "Strategy",
    "StreamAction",
    "StreamHandle",
    "Streamed",
    "UserError",
]
