import logging
from typing import Optional

from mediagate.config.settings import Config, config
from mediagate.models.internal import MediaRequest, StreamAction, Strategy
from mediagate.models.outcome import MissingUrl, Outcome, PasswordChallenge, Redirect, Streamed, UserError
from mediagate.services.classifier import classify
from mediagate.services.downloader import DASH_PROTOCOL, M3U8_PROTOCOLS, Downloader
from mediagate.services.errors import (
    InvalidProtocolConversionError,
    PasswordRequiredError,
    PlaylistConversionError,
    WrongPasswordError,
)
from mediagate.services.format import FormatResolver
from mediagate.services.pipeline import StreamingPipeline

logger = logging.getLogger(__name__)


class DownloadDispatcher:
    """
    One download attempt: classify, resolve, open the stream.

    Failures with a user-facing meaning come back as Outcome variants; every
    other error propagates to the caller untouched.
    """

    def __init__(self, downloader: Downloader, cfg: Optional[Config] = None):
        self.config = cfg or config
        self.resolver = FormatResolver(downloader, self.config)
        self.pipeline = StreamingPipeline(downloader, self.config)

    async def attempt(self, request: MediaRequest, with_body: bool) -> Outcome:
        if not request.url:
            return MissingUrl()

        strategy = classify(request, self.config.convert)
        if strategy == Strategy.CUSTOM and request.custom_format not in self.config.convert.convert_advanced_formats:
            return UserError("error.unsupported_format", 400)

        try:
            plan = await self.resolver.resolve(request, strategy)
            logger.debug(f"Resolved {strategy.value} request to {plan.action.value} ({plan.video.requested_format})")

            if plan.action == StreamAction.REDIRECT:
                return Redirect(plan.location)

            handle = await self.pipeline.open(plan, request, with_body)
            return Streamed(handle)

        except PasswordRequiredError:
            return PasswordChallenge()
        except WrongPasswordError:
            return UserError("error.wrong_password", 403)
        except PlaylistConversionError:
            return UserError("error.playlist_conversion", 400)
        except InvalidProtocolConversionError as e:
            outcome = translate_protocol_error(e)
            if outcome is None:
                raise
            return outcome


def translate_protocol_error(error: InvalidProtocolConversionError) -> Optional[UserError]:
    """Friendly message for the two known protocols, None for anything else"""
    if error.protocol in M3U8_PROTOCOLS:
        return UserError("error.m3u8_conversion", 400)
    if error.protocol == DASH_PROTOCOL:
        return UserError("error.dash_conversion", 400)
    return None
