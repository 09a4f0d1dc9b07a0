"""Gemini protocol implementation."""

import logging
import socket
import ssl
import threading
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from gemlink.errors import (
    ConnectionFailed, InvalidStatusCode, InvalidUrl, LoadCancelled,
    MalformedHeader, MissingStatusLine, TlsError,
)
from gemlink.navigation import parse_host_and_port, parse_url
from gemlink.status import StatusClass, classify, get_status_name
from gemlink.tofu import CertStatus, TrustPolicy


DEFAULT_PORT = 1965
LINE_TERM = b"\r\n"
MAX_URL_LEN = 1024
RECV_SIZE = 4096


def build_request(url: str) -> bytes:
    """Return the request payload for this URL."""
    try:
        payload = url.encode("utf-8")
    except UnicodeEncodeError:
        raise InvalidUrl(f"Request URL is not valid UTF-8: {url!r}")
    if len(payload) > MAX_URL_LEN:
        raise InvalidUrl(f"Request URL too long ({len(payload)} bytes).")
    return payload + LINE_TERM


@lru_cache(None)
def get_ssl_context() -> ssl.SSLContext:
    """Return a SSL context that is adequate for Gemini.

    Certificates are not checked against any authority, trust decisions are
    left to a TrustPolicy. The context is created once and shared by all
    sessions, it must not be modified.
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


class Session:
    """A TLS connection to a Gemini server, good for one exchange only.

    Use `Session.connect` to open the connection and check the server
    certificate, then `exchange` to send the request and get the response.
    The connection is closed after the exchange.
    """

    def __init__(self, url: str, ssock: ssl.SSLSocket,
                 cert_status: CertStatus) -> None:
        self.url = url
        self.ssock = ssock
        self.cert_status = cert_status
        self.used = False

    @staticmethod
    def connect(url: str, trust_policy: TrustPolicy,
                connect_timeout: Optional[float] =None,
                read_timeout: Optional[float] =None) -> "Session":
        """Open a TLS connection to the server of this URL.

        The connect timeout applies to the TCP connection and the TLS
        handshake, the read timeout to each following socket operation.

        Raises InvalidUrl, ConnectionFailed, TlsError or a CertificateError
        raised by the trust policy.
        """
        url_parts = parse_url(url)
        if url_parts["scheme"] != "gemini" or not url_parts["netloc"]:
            raise InvalidUrl(f"Not a Gemini URL: {url}")
        host_and_port = parse_host_and_port(url_parts["netloc"], DEFAULT_PORT)
        if not host_and_port:
            raise InvalidUrl(f"Invalid host or port in {url}")
        hostname, port = host_and_port

        logging.debug(f"Connecting to {hostname}:{port}.")
        try:
            sock = socket.create_connection((hostname, port),
                                            timeout=connect_timeout)
        except UnicodeError:
            # Host names are IDNA-encoded, which rejects empty or long labels.
            raise InvalidUrl(f"Invalid host name in {url}")
        except OSError as exc:
            details = exc.strerror or str(exc)
            raise ConnectionFailed(f"Connection failed ({url}): {details}")

        context = get_ssl_context()
        try:
            ssock = context.wrap_socket(sock, server_hostname=hostname)
        except ssl.SSLError as exc:
            sock.close()
            raise TlsError(f"TLS handshake failed ({url}): {exc.reason}")
        except UnicodeError:
            sock.close()
            raise InvalidUrl(f"Invalid host name in {url}")
        except OSError as exc:
            sock.close()
            details = exc.strerror or str(exc)
            raise ConnectionFailed(f"Connection failed ({url}): {details}")

        try:
            der = ssock.getpeercert(binary_form=True)
            cert_status = trust_policy.check(der, hostname)
        except Exception:
            ssock.close()
            raise
        ssock.settimeout(read_timeout)
        return Session(url, ssock, cert_status)

    def exchange(self, payload: bytes,
                 cancel: Optional[threading.Event] =None) -> bytes:
        """Send the payload and return all received data until EOF."""
        if self.used:
            raise RuntimeError("A session supports only one exchange.")
        self.used = True
        chunks = []
        try:
            self.ssock.sendall(payload)
            while True:
                if cancel is not None and cancel.is_set():
                    raise LoadCancelled(f"Load of {self.url} cancelled.")
                buf = self.ssock.recv(RECV_SIZE)
                if not buf:
                    break
                chunks.append(buf)
        except socket.timeout:
            raise ConnectionFailed(
                f"Server did not respond in time ({self.url}).")
        except OSError as exc:
            details = exc.strerror or str(exc)
            raise ConnectionFailed(f"Connection lost ({self.url}): {details}")
        finally:
            self.close()
        return b"".join(chunks)

    def close(self):
        """Close the connection."""
        self.ssock.close()


@dataclass
class Response:
    """A Gemini response."""

    code: int
    status_class: StatusClass
    meta: Optional[str] = None
    body: bytes = b""

    MAX_META_LEN = 1024

    @property
    def status_name(self) -> str:
        return get_status_name(self.code)

    @staticmethod
    def parse(data: bytes) -> "Response":
        """Parse a received response.

        The header ends at the first line feed, an optional carriage return
        before it is ignored. Everything after the line feed is the body.
        """
        header_len = data.find(b"\n")
        if header_len == -1:
            raise MissingStatusLine("No status line in response.")
        header_bytes = data[:header_len]
        if header_bytes.endswith(b"\r"):
            header_bytes = header_bytes[:-1]
        try:
            header = header_bytes.decode("utf-8")
        except UnicodeDecodeError:
            raise MalformedHeader("Response header is not valid UTF-8.")

        header_parts = header.split(maxsplit=1)
        if not header_parts:
            raise InvalidStatusCode("Empty status line.")
        code_str = header_parts[0]
        if not code_str.isdigit() or not code_str.isascii():
            raise InvalidStatusCode(f"Invalid status code {code_str!r}.")
        code = int(code_str)
        status_class = classify(code)

        meta = header_parts[1].strip() if len(header_parts) > 1 else ""
        if len(meta) > Response.MAX_META_LEN:
            raise MalformedHeader("Response meta is too long.")
        body = data[header_len + 1:]
        return Response(code, status_class, meta or None, body)
