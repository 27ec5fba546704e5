"""Exception hierarchy shared by the signer, the upload client and the pipeline."""

from typing import Optional


class SwarmUploadError(Exception):
    """
    Base exception class for all upload-related errors.
    """
    pass


class EncodingError(SwarmUploadError, ValueError):
    """
    Raised when signer input has the wrong length or is out of range.

    Never retried: the same input fails the same way every time.
    """
    pass


class BucketFullError(EncodingError):
    """
    Raised when a postage bucket has no capacity left for another stamp.
    """
    pass


class IntegrityError(SwarmUploadError):
    """
    Raised when the storage node reports a different address than the one
    computed locally for the uploaded bytes.
    """

    def __init__(self, expected: str, actual: str):
        super().__init__(f"Expected {expected} but got {actual}")
        self.expected = expected
        self.actual = actual


class NetworkError(SwarmUploadError):
    """
    Raised on any transport or HTTP failure while talking to the storage node.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
