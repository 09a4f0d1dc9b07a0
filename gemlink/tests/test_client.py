import threading
import unittest

from ..client import (
    Client, DocumentLoaded, InputRequired, LoadError, MediaLoaded)
from ..errors import (
    ConnectionFailed, IdentityChanged, LoadCancelled, MissingRedirectTarget,
    TooManyRedirects,
)
from ..gemtext import Heading, Link
from ..protocol import Session
from ..status import StatusClass
from ..tofu import AcceptAll, CertStash, PinnedTofu


class FakeSession:

    def __init__(self, server, url):
        self.server = server
        self.url = url

    def exchange(self, payload, cancel=None):
        self.server.requests.append(payload)
        return self.server.respond(self.url)


class FakeServer:
    """Serve scripted responses, a dict of URLs to raw responses."""

    def __init__(self, responses=None, error=None):
        self.responses = responses or {}
        self.error = error
        self.requests = []
        self.connections = []

    def respond(self, url):
        return self.responses[url]

    def connect(self, url, trust_policy, connect_timeout=None,
                read_timeout=None):
        self.connections.append(url)
        if self.error:
            raise self.error
        return FakeSession(self, url)


class RedirectLoopServer(FakeServer):

    def respond(self, url):
        return b"30 /loop\r\n"


class RemoteRedirectServer(FakeServer):
    """Open real connections to URLs without scripted response."""

    def connect(self, url, trust_policy, connect_timeout=None,
                read_timeout=None):
        if url in self.responses:
            return super().connect(url, trust_policy)
        self.connections.append(url)
        return Session.connect(url, trust_policy)


def get_client(server, **kwargs):
    return Client(AcceptAll(), connect=server.connect, **kwargs)


class TestRequest(unittest.TestCase):

    def test_request(self):
        server = FakeServer({"gemini://host/": b"20 text/gemini\r\nhi\n"})
        url, response = get_client(server).request("gemini://host/")
        self.assertEqual(url, "gemini://host/")
        self.assertEqual(response.status_class, StatusClass.SUCCESS)
        self.assertEqual(server.requests, [b"gemini://host/\r\n"])

    def test_follow_redirects(self):
        server = FakeServer({
            "gemini://host/a": b"30 b\r\n",
            "gemini://host/b": b"31 gemini://other/c\r\n",
            "gemini://other/c": b"20 text/gemini\r\n# C\n",
        })
        url, response = get_client(server).request("gemini://host/a")
        self.assertEqual(url, "gemini://other/c")
        self.assertEqual(response.body, b"# C\n")
        # One connection per hop.
        self.assertEqual(
            server.connections,
            ["gemini://host/a", "gemini://host/b", "gemini://other/c"]
        )

    def test_redirect_loop(self):
        server = RedirectLoopServer()
        client = get_client(server, max_redirects=5)
        with self.assertRaises(TooManyRedirects):
            client.request("gemini://host/loop")
        self.assertEqual(len(server.connections), 6)

    def test_max_redirects_reached(self):
        server = FakeServer({
            "gemini://host/a": b"30 /b\r\n",
            "gemini://host/b": b"20 text/gemini\r\n",
        })
        url, _ = get_client(server, max_redirects=1).request("gemini://host/a")
        self.assertEqual(url, "gemini://host/b")
        with self.assertRaises(TooManyRedirects):
            get_client(server, max_redirects=0).request("gemini://host/a")

    def test_redirect_without_target(self):
        server = FakeServer({"gemini://host/": b"30\r\n"})
        with self.assertRaises(MissingRedirectTarget):
            get_client(server).request("gemini://host/")

    def test_cancelled(self):
        server = FakeServer({"gemini://host/": b"20 text/gemini\r\n"})
        cancel = threading.Event()
        cancel.set()
        with self.assertRaises(LoadCancelled):
            get_client(server).request("gemini://host/", cancel=cancel)
        self.assertEqual(server.connections, [])


class TestLoad(unittest.TestCase):

    def test_load_gemtext(self):
        server = FakeServer({
            "gemini://host/dir/": b"20 text/gemini\r\n# Title\n=> page Page\n",
        })
        outcome = get_client(server).load("gemini://host/dir/")
        self.assertIsInstance(outcome, DocumentLoaded)
        self.assertEqual(outcome.url, "gemini://host/dir/")
        self.assertEqual(outcome.document.lines, (
            Heading(1, "Title"),
            Link("gemini://host/dir/page", "Page"),
        ))

    def test_load_links_resolve_against_final_url(self):
        server = FakeServer({
            "gemini://host/old": b"31 /new/\r\n",
            "gemini://host/new/": b"20\r\n=> rel\n",
        })
        outcome = get_client(server).load("gemini://host/old")
        self.assertEqual(outcome.url, "gemini://host/new/")
        self.assertEqual(outcome.document.url, "gemini://host/new/")
        self.assertEqual(
            outcome.document.lines, (Link("gemini://host/new/rel"),))

    def test_load_charset(self):
        server = FakeServer({
            "gemini://host/": b"20 text/gemini; charset=latin-1\r\ncaf\xe9\n",
        })
        outcome = get_client(server).load("gemini://host/")
        self.assertEqual(outcome.document.lines[0].text, "café")

    def test_load_invalid_utf8(self):
        server = FakeServer({"gemini://host/": b"20 text/gemini\r\n\xff\xfe\n"})
        outcome = get_client(server).load("gemini://host/")
        self.assertIsInstance(outcome, LoadError)
        self.assertEqual(outcome.kind, "InvalidUtf8Body")

    def test_load_image(self):
        server = FakeServer({"gemini://host/a.png": b"20 image/png\r\n\x89PNG"})
        outcome = get_client(server).load("gemini://host/a.png")
        self.assertIsInstance(outcome, MediaLoaded)
        self.assertEqual(outcome.mime_type.short, "image/png")
        self.assertEqual(outcome.content, b"\x89PNG")

    def test_load_unsupported_mime_type(self):
        for meta in (b"application/pdf", b"nonsense"):
            server = FakeServer({"gemini://host/": b"20 " + meta + b"\r\n"})
            outcome = get_client(server).load("gemini://host/")
            self.assertIsInstance(outcome, LoadError)
            self.assertEqual(outcome.kind, "UnsupportedMimeType")

    def test_load_input(self):
        server = FakeServer({
            "gemini://host/search": b"10 Query?\r\n",
            "gemini://host/secret": b"11\r\n",
            "gemini://host/search?my%20query": b"20 text/gemini\r\nfound\n",
        })
        client = get_client(server, default_prompt="Enter input")
        outcome = client.load("gemini://host/search")
        self.assertEqual(
            outcome, InputRequired("gemini://host/search", "Query?", False))
        outcome = client.load("gemini://host/secret")
        self.assertEqual(
            outcome, InputRequired("gemini://host/secret", "Enter input", True))

        outcome = client.submit_input("gemini://host/search", "my query")
        self.assertIsInstance(outcome, DocumentLoaded)
        self.assertEqual(outcome.url, "gemini://host/search?my%20query")

    def test_load_server_errors(self):
        server = FakeServer({
            "gemini://host/temp": b"44 Slow down\r\n",
            "gemini://host/gone": b"52\r\n",
            "gemini://host/cert": b"60 Certificate required\r\n",
        })
        client = get_client(server)
        outcome = client.load("gemini://host/temp")
        self.assertEqual(
            outcome, LoadError("TEMPORARY_FAILURE", "Slow down", code=44))
        outcome = client.load("gemini://host/gone")
        self.assertEqual(outcome, LoadError("PERMANENT_FAILURE", "GONE", code=52))
        outcome = client.load("gemini://host/cert")
        self.assertEqual(outcome.kind, "CLIENT_CERTIFICATE_REQUIRED")
        self.assertEqual(outcome.message, "Certificate required")

    def test_load_never_raises(self):
        cases = [
            (FakeServer(error=ConnectionFailed("refused")), "ConnectionFailed"),
            (FakeServer({"gemini://host/": b"garbage"}), "MissingStatusLine"),
            (FakeServer({"gemini://host/": b"99 x\r\n"}), "UnknownStatus"),
            (FakeServer({"gemini://host/": b"20\r\n=>\n"}), "MissingUriInLink"),
            (RedirectLoopServer(), "TooManyRedirects"),
        ]
        for server, kind in cases:
            outcome = get_client(server).load("gemini://host/")
            self.assertIsInstance(outcome, LoadError)
            self.assertEqual(outcome.kind, kind)
            self.assertIsNotNone(outcome.error)

    def test_load_invalid_host_names(self):
        long_label_url = "gemini://" + "a" * 70 + ".com/"
        server = RemoteRedirectServer({
            "gemini://host/": f"30 {long_label_url}\r\n".encode(),
        })
        outcome = get_client(server).load("gemini://host/")
        self.assertIsInstance(outcome, LoadError)
        self.assertEqual(outcome.kind, "InvalidUrl")
        self.assertEqual(server.connections[-1], long_label_url)

        outcome = get_client(RemoteRedirectServer()).load("gemini://a..b/")
        self.assertEqual(outcome.kind, "InvalidUrl")

    def test_load_unencodable_url(self):
        server = FakeServer()
        outcome = get_client(server).load("gemini://host/\udcff")
        self.assertIsInstance(outcome, LoadError)
        self.assertEqual(outcome.kind, "InvalidUrl")
        self.assertEqual(server.connections, [])

    def test_load_identity_changed(self):
        error = IdentityChanged("host", "aa", "bb", 0)
        outcome = get_client(FakeServer(error=error)).load("gemini://host/")
        self.assertEqual(outcome.kind, "IdentityChanged")
        self.assertIs(outcome.error, error)


class TestFromConfig(unittest.TestCase):

    def test_from_config(self):
        config = {
            "connect_timeout": 3,
            "read_timeout": 4,
            "max_redirects": 2,
            "trust_policy": "tofu",
            "default_input_prompt": "?",
        }
        stash = CertStash()
        client = Client.from_config(config, stash)
        self.assertIsInstance(client.trust_policy, PinnedTofu)
        self.assertIs(client.trust_policy.stash, stash)
        self.assertEqual(client.connect_timeout, 3)
        self.assertEqual(client.read_timeout, 4)
        self.assertEqual(client.max_redirects, 2)
        self.assertEqual(client.default_prompt, "?")

        config["trust_policy"] = "accept_all"
        client = Client.from_config(config, stash)
        self.assertIsInstance(client.trust_policy, AcceptAll)
