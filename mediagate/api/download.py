import functools
from typing import Callable, Dict

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response, StreamingResponse
from pydantic import ValidationError
from starlette.background import BackgroundTask

from mediagate.core.logging import log_error, log_info
from mediagate.core.security import SecurityValidator, UrlValidationResult
from mediagate.i18n import i18n
from mediagate.infra.concurrency import release_stream_slot, stream_slot_limiter
from mediagate.infra.rate_limit import rate_limiter
from mediagate.models.outcome import MissingUrl, Outcome, PasswordChallenge, Redirect, Streamed, UserError
from mediagate.models.request import DownloadParams
from mediagate.services.dispatch import DownloadDispatcher
from mediagate.services.downloader import Downloader, downloader
from mediagate.utils.locale import get_locale, safe_url_for_log

BODY_METHODS = ("GET", "POST")

router = APIRouter()


def get_downloader() -> Downloader:
    return downloader


async def collect_params(request: Request) -> Dict[str, str]:
    """Query parameters, overridden by form fields on POST"""
    data = dict(request.query_params)
    if request.method == "POST":
        form = await request.form()
        data.update({key: value for key, value in form.items() if isinstance(value, str)})
    return data


def parse_params(data: Dict[str, str], _: Callable[..., str]) -> DownloadParams:
    try:
        return DownloadParams.model_validate(data)
    except ValidationError as e:
        reason = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
        raise HTTPException(status_code=400, detail=_("error.invalid_params", reason=reason))


@router.api_route(
    "/download",
    methods=["GET", "POST", "HEAD"],
    dependencies=[Depends(rate_limiter), Depends(stream_slot_limiter)]
)
async def download(request: Request, downloader: Downloader = Depends(get_downloader)):
    """Redirect to, stream, or convert the media behind ?url="""

    locale = get_locale(request.headers.get("accept-language"))
    _ = functools.partial(i18n.get, locale=locale)

    try:
        data = await collect_params(request)
        if not (data.get("url") or "").strip():
            outcome: Outcome = MissingUrl()
        else:
            media_request = parse_params(data, _).to_request()

            validation_result = await SecurityValidator.validate_url(media_request.url)
            if validation_result == UrlValidationResult.BLOCKED:
                raise HTTPException(status_code=403, detail=_("error.private_ip"))
            if validation_result == UrlValidationResult.INVALID:
                raise HTTPException(status_code=400, detail=_("error.invalid_url", reason="Invalid format"))

            log_info(request, i18n.get("log.downloading", url=safe_url_for_log(media_request.url)))
            dispatcher = DownloadDispatcher(downloader)
            outcome = await dispatcher.attempt(media_request, with_body=request.method in BODY_METHODS)
    except BaseException:
        await release_stream_slot(request)
        raise

    return await build_response(request, outcome, _)


async def build_response(request: Request, outcome: Outcome, _: Callable[..., str]) -> Response:
    """Turn a dispatch outcome into the HTTP response"""
    if not isinstance(outcome, Streamed) or not outcome.handle.has_body:
        await release_stream_slot(request)

    if isinstance(outcome, MissingUrl):
        return RedirectResponse(str(request.url_for("index")), status_code=302)

    if isinstance(outcome, Redirect):
        log_info(request, i18n.get("log.redirecting", url=safe_url_for_log(outcome.location)))
        return RedirectResponse(outcome.location, status_code=302)

    if isinstance(outcome, PasswordChallenge):
        return JSONResponse(
            status_code=401,
            content={"detail": _("error.password_required"), "password_required": True}
        )

    if isinstance(outcome, UserError):
        raise HTTPException(status_code=outcome.status_code, detail=_(outcome.message_key))

    handle = outcome.handle
    if not handle.has_body:
        return Response(status_code=handle.status_code, headers=handle.headers)

    async def cleanup():
        await handle.aclose()
        await release_stream_slot(request)

    async def body():
        try:
            async for chunk in handle.body:
                yield chunk
        except Exception as e:
            log_error(request, f"Stream aborted: {e}")
            raise
        finally:
            await cleanup()

    return StreamingResponse(
        body(),
        status_code=handle.status_code,
        headers=handle.headers,
        background=BackgroundTask(cleanup)
    )
