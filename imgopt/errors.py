from pathlib import Path
from typing import Optional, Union


class ImgOptError(Exception):
    """Base class for everything raised by the variant cache."""


class EncodeError(ImgOptError):
    """A variant could not be produced for *source*.

    ``cause`` keeps the underlying exception (if any) so callers can log or
    report it without digging through ``__cause__``.
    """

    def __init__(self, source: Union[str, Path], message: str, cause: Optional[BaseException] = None):
        self.source = str(source)
        self.cause  = cause
        detail = f"{message} ({self.source})"
        if cause is not None:
            detail = f"{detail}: {cause}"
        super().__init__(detail)


class CapabilityUnavailable(EncodeError):
    pass


class SourceUnreadable(EncodeError):
    pass


class UnsupportedFormat(EncodeError):
    pass


class EncodeFailure(EncodeError):
    pass


class CacheIOError(EncodeError):
    pass
