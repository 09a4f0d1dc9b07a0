"""Errors raised by the Gemini client.

Every error aborts the current load; `Client.load` turns them into LoadError
outcomes so a caller never has to catch them itself.
"""


class GeminiError(Exception):
    """Base error, carrying a human-readable message."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def kind(self) -> str:
        return type(self).__name__


class InvalidUrl(GeminiError):
    """The URL can't be requested (bad scheme, host, port or length)."""


class ConnectionFailed(GeminiError):
    """DNS resolution, TCP connection or socket I/O failed."""


class LoadCancelled(GeminiError):
    """The caller cancelled the load."""


class TlsError(GeminiError):
    """The TLS handshake failed."""


class CertificateError(TlsError):
    """The server certificate has been rejected."""


class SignatureInvalid(CertificateError):
    """The certificate is missing or can't be loaded: always fatal."""


class IdentityChanged(CertificateError):
    """The certificate does not match the fingerprint pinned for this host.

    Attributes:
    - hostname: host the certificate was presented for.
    - known_fingerprint: fingerprint currently in the stash.
    - fingerprint: fingerprint of the presented certificate.
    - expiration: timestamp of the presented certificate's expiration date,
      used if the caller decides to pin the new identity.
    """

    def __init__(self, hostname: str, known_fingerprint: str,
                 fingerprint: str, expiration: int) -> None:
        super().__init__(f"Certificate for {hostname} has changed.")
        self.hostname = hostname
        self.known_fingerprint = known_fingerprint
        self.fingerprint = fingerprint
        self.expiration = expiration


class ResponseParseError(GeminiError):
    """The response header could not be parsed."""


class MissingStatusLine(ResponseParseError):
    pass


class InvalidStatusCode(ResponseParseError):
    pass


class UnknownStatus(ResponseParseError):
    """The status code is a number outside of the valid range."""

    def __init__(self, code: int) -> None:
        super().__init__(f"Unknown status code {code}.")
        self.code = code


class MalformedHeader(ResponseParseError):
    pass


class MissingRedirectTarget(GeminiError):
    pass


class TooManyRedirects(GeminiError):
    pass


class UrlJoinError(GeminiError):
    pass


class UnsupportedMimeType(GeminiError):
    pass


class InvalidUtf8Body(GeminiError):
    pass


class MissingUriInLink(GeminiError):
    pass
