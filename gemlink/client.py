"""Gemini client: load URLs, follow redirects, dispatch content."""

import logging
import threading
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from gemlink.errors import (
    GeminiError, InvalidUtf8Body, LoadCancelled, MissingRedirectTarget,
    TooManyRedirects, UnsupportedMimeType,
)
from gemlink.gemtext import Document, parse_gemtext
from gemlink.mime import DEFAULT_MIME_TYPE, MimeType
from gemlink.navigation import join_url, set_parameter
from gemlink.protocol import Response, Session, build_request
from gemlink.status import StatusClass, StatusCode
from gemlink.tofu import AcceptAll, CertStash, PinnedTofu, TrustPolicy


DEFAULT_MAX_REDIRECTS = 5
DEFAULT_PROMPT = "Input needed"


@dataclass
class DocumentLoaded:
    url: str
    document: Document


@dataclass
class MediaLoaded:
    """Binary content the presentation layer may display, e.g. an image."""
    url: str
    mime_type: MimeType
    content: bytes


@dataclass
class InputRequired:
    """The server wants input; resubmit it with `Client.submit_input`."""
    url: str
    prompt: str
    sensitive: bool = False


@dataclass
class LoadError:
    """A load failed.

    Attributes:
    - kind: the error class name, or the status class name for errors
      reported by the server.
    - message: human-readable message.
    - code: the status code for errors reported by the server.
    - error: the GeminiError raised, if any, e.g. to re-pin a certificate on
      IdentityChanged.
    """
    kind: str
    message: str
    code: Optional[int] = None
    error: Optional[GeminiError] = None

    @staticmethod
    def from_exception(exc: GeminiError) -> "LoadError":
        return LoadError(exc.kind, exc.message, error=exc)


Outcome = Union[DocumentLoaded, MediaLoaded, InputRequired, LoadError]


class Client:
    """Perform Gemini loads.

    Attributes:
    - trust_policy: TrustPolicy checking server certificates.
    - connect_timeout: timeout for the connection and TLS handshake.
    - read_timeout: timeout for each read or write on the connection.
    - max_redirects: number of redirects followed before giving up.
    - default_prompt: prompt used when an input request has no meta.
    - connect: function opening a Session, with Session.connect's signature.
    """

    def __init__(self, trust_policy: TrustPolicy,
                 connect_timeout: Optional[float] =10,
                 read_timeout: Optional[float] =30,
                 max_redirects: int =DEFAULT_MAX_REDIRECTS,
                 default_prompt: str =DEFAULT_PROMPT,
                 connect=Session.connect) -> None:
        self.trust_policy = trust_policy
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.max_redirects = max_redirects
        self.default_prompt = default_prompt
        self.connect = connect

    @staticmethod
    def from_config(config: dict, cert_stash: CertStash) -> "Client":
        """Create a Client using the values of a loaded config."""
        if config["trust_policy"] == "accept_all":
            trust_policy = AcceptAll()
        else:
            trust_policy = PinnedTofu(cert_stash)
        return Client(
            trust_policy,
            connect_timeout=config["connect_timeout"],
            read_timeout=config["read_timeout"],
            max_redirects=config["max_redirects"],
            default_prompt=config["default_input_prompt"],
        )

    def request(self, url: str, cancel: Optional[threading.Event] =None
                ) -> Tuple[str, Response]:
        """Request this URL, following redirects.

        Each hop uses a new connection. Return the final URL along with its
        response, which is never a redirect. Raises a GeminiError on failure.
        """
        redirects = 0
        while True:
            if cancel is not None and cancel.is_set():
                raise LoadCancelled(f"Load of {url} cancelled.")
            response = self._exchange(url, cancel)
            if response.status_class != StatusClass.REDIRECT:
                return url, response
            if not response.meta:
                raise MissingRedirectTarget(
                    f"Redirect from {url} has no target.")
            if redirects >= self.max_redirects:
                raise TooManyRedirects(
                    f"Too many redirects, last one from {url}.")
            redirects += 1
            url = join_url(url, response.meta)
            logging.info(f"Redirected ({redirects}) to {url}.")

    def _exchange(self, url: str,
                  cancel: Optional[threading.Event]) -> Response:
        payload = build_request(url)
        session = self.connect(url, self.trust_policy,
                               connect_timeout=self.connect_timeout,
                               read_timeout=self.read_timeout)
        data = session.exchange(payload, cancel=cancel)
        response = Response.parse(data)
        logging.debug(f"{url}: {response.code} {response.meta}")
        return response

    def load(self, url: str,
             cancel: Optional[threading.Event] =None) -> Outcome:
        """Load this URL and return an Outcome; never raise GeminiError."""
        try:
            url, response = self.request(url, cancel=cancel)
            return self._handle_response(url, response)
        except GeminiError as exc:
            logging.error(f"Failed to load {url}: {exc.message}")
            return LoadError.from_exception(exc)

    def submit_input(self, url: str, user_input: str,
                     cancel: Optional[threading.Event] =None) -> Outcome:
        """Send user input to the URL that requested it."""
        return self.load(set_parameter(url, user_input), cancel=cancel)

    def _handle_response(self, url: str, response: Response) -> Outcome:
        status_class = response.status_class
        if status_class == StatusClass.SUCCESS:
            return self._handle_successful_response(url, response)
        if status_class == StatusClass.INPUT:
            sensitive = response.code == StatusCode.SENSITIVE_INPUT
            prompt = response.meta or self.default_prompt
            return InputRequired(url, prompt, sensitive)
        message = response.meta or response.status_name
        return LoadError(status_class.name, message, code=response.code)

    def _handle_successful_response(self, url: str,
                                    response: Response) -> Outcome:
        """Dispatch a successful response content on its MIME type.

        Gemtext is decoded with the charset parameter of the MIME type,
        strictly; images are returned as is.
        """
        mime_string = response.meta or DEFAULT_MIME_TYPE
        mime_type = MimeType.from_str(mime_string)
        if not mime_type:
            raise UnsupportedMimeType(f"Invalid MIME type {mime_string!r}.")

        if mime_type.short == DEFAULT_MIME_TYPE:
            encoding = mime_type.charset
            try:
                text = response.body.decode(encoding)
            except LookupError:
                raise UnsupportedMimeType(f"Unknown encoding {encoding}.")
            except UnicodeDecodeError as exc:
                raise InvalidUtf8Body(f"Body is not valid {encoding}: {exc}")
            return DocumentLoaded(url, parse_gemtext(url, text))
        if mime_type.main_type == "image":
            return MediaLoaded(url, mime_type, response.body)
        raise UnsupportedMimeType(f"Unsupported MIME type {mime_type.short}.")
