from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union


@dataclass
class StreamHandle:
    """
    Response headers plus an optional live byte stream.
    The handle owns the stream; aclose() releases it and may be called repeatedly.
    """
    headers: Dict[str, str]
    body: Optional[Any] = None
    status_code: int = 200
    _closed: bool = field(default=False, repr=False)

    @property
    def has_body(self) -> bool:
        return self.body is not None

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self.body is not None:
            await self.body.aclose()


@dataclass(frozen=True)
class Streamed:
    handle: StreamHandle


@dataclass(frozen=True)
class Redirect:
    location: str


@dataclass(frozen=True)
class MissingUrl:
    pass


@dataclass(frozen=True)
class PasswordChallenge:
    pass


@dataclass(frozen=True)
class UserError:
    """Failure with a localized user-facing message"""
    message_key: str
    status_code: int = 400


Outcome = Union[Streamed, Redirect, MissingUrl, PasswordChallenge, UserError]
