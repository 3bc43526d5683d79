"""Tests for the synchronous cookie session."""

import json

import httpx
import pytest

from cookie_session import (
    CookieError,
    CookieFileError,
    HttpClient,
    JarCookieStore,
    SendError,
    Session,
)
from tests.helpers import MockSite, cookie_pairs


class RecordingStore:
    """Minimal cookie store that records every call."""

    def __init__(self, header: str | None = None):
        self.header = header
        self.stored: list[tuple[str, str]] = []
        self.queried: list[str] = []

    def store_set_cookie(self, set_cookie: str, url) -> bool:
        if set_cookie.startswith("bad"):
            raise CookieError("bad cookie", set_cookie=set_cookie)
        self.stored.append((set_cookie, str(url)))
        return True

    def cookie_header(self, url) -> str | None:
        self.queried.append(str(url))
        return self.header


class TestSessionCookies:
    """Tests for cookie attachment and extraction around send."""

    def test_end_to_end(self, session, site):
        """Test a cookie set by one response is sent on the next request only to its domain."""
        site.route("http://example.com/a", "id=123; Path=/")

        session.get("http://example.com/a")
        assert site.cookie_header() is None

        session.get("http://example.com/b")
        assert site.cookie_header() == "id=123"

        session.get("http://other.com/")
        assert site.cookie_header() is None

    def test_path_prefix(self, session, site):
        """Test that a cookie with a path is sent to paths below it only."""
        site.route("http://example.com/app/login", "token=t1; Path=/app")

        session.get("http://example.com/app/login")
        session.get("http://example.com/app/data/1")
        assert site.cookie_header() == "token=t1"

        session.get("http://example.com/public")
        assert site.cookie_header() is None

    def test_multiple_set_cookie_headers(self, session, site):
        """Test that every Set-Cookie header of a response is stored."""
        site.route("http://example.com/", "a=1", "b=2", "c=3; Max-Age=60")

        session.get("http://example.com/")
        session.get("http://example.com/")

        assert cookie_pairs(site.cookie_header()) == {"a=1", "b=2", "c=3"}

    def test_malformed_set_cookie_is_skipped(self, session, site, store):
        """Test that an unparseable Set-Cookie neither aborts the send nor is sent back."""
        site.route("http://example.com/", "garbage;;;", "good=1")

        response = session.get("http://example.com/")
        assert response.status_code == 200

        session.get("http://example.com/next")
        assert site.cookie_header() == "good=1"
        assert [c.name for c in store.iter_any()] == ["good"]

    def test_overwrite_keeps_latest_value(self, session, site, store):
        """Test that the same cookie set twice keeps one entry with the newest value."""
        site.route("http://example.com/one", "n=1; Path=/")
        site.route("http://example.com/two", "n=2; Path=/")

        session.get("http://example.com/one")
        session.get("http://example.com/two")
        session.get("http://example.com/three")

        assert site.cookie_header() == "n=2"
        assert len([c for c in store.iter_any() if c.name == "n"]) == 1

    def test_response_can_expire_cookie(self, session, site):
        """Test that Max-Age=0 from the server removes the cookie."""
        site.route("http://example.com/login", "sid=abc; Max-Age=300")
        site.route("http://example.com/logout", "sid=deleted; Max-Age=0")

        session.get("http://example.com/login")
        session.get("http://example.com/logout")
        assert site.cookie_header() == "sid=abc"

        session.get("http://example.com/")
        assert site.cookie_header() is None

    def test_foreign_domain_cannot_expire_cookie(self, session, site):
        """Test that an expired Set-Cookie from another site leaves the cookie alone."""
        site.route("http://example.com/login", "sid=1; Domain=example.com; Path=/")
        site.route("http://evil.com/", "sid=x; Domain=example.com; Path=/; Max-Age=0")

        session.get("http://example.com/login")
        session.get("http://evil.com/")
        assert site.cookie_header() is None

        session.get("http://example.com/")
        assert site.cookie_header() == "sid=1"

    def test_secure_cookie_only_on_https(self, session, site):
        """Test that a Secure cookie is only attached to https requests."""
        site.route("https://example.com/", "s=1; Secure")

        session.get("https://example.com/")
        session.get("http://example.com/")
        assert site.cookie_header() is None

        session.get("https://example.com/")
        assert site.cookie_header() == "s=1"

    def test_response_returned_untouched(self, session, site):
        """Test that the client's response is handed back as is."""
        site.route("http://example.com/", "a=1", status=201)

        response = session.get("http://example.com/")

        assert isinstance(response, httpx.Response)
        assert response.status_code == 201
        assert response.text == "ok"
        assert response.headers.get_list("set-cookie") == ["a=1"]

    def test_send_with_prebuilt_request(self, session, site, client):
        """Test sending a request built by the caller."""
        site.route("http://example.com/", "a=1")
        session.get("http://example.com/")

        request = client.build_request("PUT", "http://example.com/item", content=b"data")
        response = session.send(request)

        assert response.status_code == 200
        assert site.requests[-1].method == "PUT"
        assert site.cookie_header() == "a=1"


class TestPrepare:
    """Tests for the request customization step."""

    def test_prepare_modifies_in_place(self, session, site):
        """Test that prepare may mutate the request and return None."""

        def add_header(request: httpx.Request) -> None:
            request.headers["X-Test"] = "yes"

        session.get_with("http://example.com/", add_header)

        assert site.requests[-1].headers["X-Test"] == "yes"

    def test_prepare_returns_replacement(self, session, site, client):
        """Test that the request returned by prepare is the one sent."""

        def replace(request: httpx.Request) -> httpx.Request:
            return client.build_request("GET", "http://example.com/replaced")

        session.get_with("http://example.com/original", replace)

        assert site.urls() == ["http://example.com/replaced"]

    def test_caller_cookie_header_is_kept(self, session, site):
        """Test that stored cookies are appended after a caller-supplied Cookie header."""
        site.route("http://example.com/", "stored=1")
        session.get("http://example.com/")

        def add_cookie(request: httpx.Request) -> httpx.Request:
            request.headers["Cookie"] = "manual=1"
            return request

        session.get_with("http://example.com/", add_cookie)

        assert site.cookie_header() == "manual=1; stored=1"

    def test_cookies_attached_after_prepare(self, session, site, client):
        """Test that cookies match the URL of the request returned by prepare."""
        site.route("http://other.com/", "o=1")
        session.get("http://other.com/")

        session.get_with(
            "http://example.com/",
            lambda r: client.build_request("GET", "http://other.com/x"),
        )

        assert site.cookie_header() == "o=1"

    @pytest.mark.parametrize(
        "verb, method",
        [
            ("get_with", "GET"),
            ("head_with", "HEAD"),
            ("delete_with", "DELETE"),
            ("post_with", "POST"),
            ("put_with", "PUT"),
            ("patch_with", "PATCH"),
            ("options_with", "OPTIONS"),
            ("get", "GET"),
            ("head", "HEAD"),
            ("delete", "DELETE"),
            ("post", "POST"),
            ("put", "PUT"),
            ("patch", "PATCH"),
            ("options", "OPTIONS"),
        ],
    )
    def test_verbs(self, session, site, verb, method):
        """Test that each verb helper sends its HTTP method with cookies."""
        site.route("http://example.com/", "v=1")
        session.get("http://example.com/")

        getattr(session, verb)("http://example.com/")

        assert site.requests[-1].method == method
        assert site.cookie_header() == "v=1"

    def test_request_kwargs_forwarded(self, session, site):
        """Test that build_request arguments are passed through."""
        session.post("http://example.com/submit", json={"a": 1}, params={"q": "x"})

        sent = site.requests[-1]
        assert sent.url.params["q"] == "x"
        assert json.loads(sent.content) == {"a": 1}


class TestSessionErrors:
    """Tests for error reporting."""

    def test_transport_error_raises_send_error(self, store):
        """Test that a failed round trip surfaces as SendError."""

        def fail(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.Client(transport=httpx.MockTransport(fail))
        session = Session(client, store)

        with pytest.raises(SendError) as exc_info:
            session.get("http://example.com/")

        assert exc_info.value.url == "http://example.com/"
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
        assert "connection refused" in str(exc_info.value)

    def test_timeout_raises_send_error(self, store):
        """Test that timeouts are reported, not retried."""
        calls = 0

        def timeout(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            raise httpx.ReadTimeout("timed out", request=request)

        session = Session(httpx.Client(transport=httpx.MockTransport(timeout)), store)

        with pytest.raises(SendError):
            session.get("http://example.com/")
        assert calls == 1

    def test_invalid_url_raises_send_error(self, session):
        """Test that an unparseable URL is reported as SendError."""
        with pytest.raises(SendError):
            session.get("http://[invalid")

    def test_cookie_error_not_propagated(self, client, site):
        """Test that a CookieError from the store is absorbed."""
        site.route("http://example.com/", "bad=1", "fine=1")
        store = RecordingStore()
        session = Session(client, store)

        response = session.get("http://example.com/")

        assert response.status_code == 200
        assert store.stored == [("fine=1", "http://example.com/")]


class TestSessionLifecycle:
    """Tests for construction, the client jar and persistence."""

    def test_custom_store_is_used(self, client, site):
        """Test that any object with the store capability can replace the jar store."""
        store = RecordingStore(header="from=store")
        session = Session(client, store)

        session.get("http://example.com/path")

        assert store.queried == ["http://example.com/path"]
        assert site.cookie_header() == "from=store"

    def test_default_store(self, client):
        """Test that a session creates an empty jar store by default."""
        session = Session(client)
        assert isinstance(session.store, JarCookieStore)
        assert len(session.store) == 0

    def test_client_jar_is_detached(self, site):
        """Test that the wrapped client's own cookies are neither sent nor updated."""
        client = httpx.Client(transport=httpx.MockTransport(site), cookies={"pre": "1"})
        site.route("http://example.com/", "a=1")
        session = Session(client)

        session.get("http://example.com/")
        assert site.cookie_header() is None

        session.get("http://example.com/")
        assert site.cookie_header() == "a=1"
        assert len(client.cookies.jar) == 0

    def test_client_jar_restored_on_close(self, site):
        """Test that a supplied client gets its own cookies back when the session closes."""
        client = httpx.Client(transport=httpx.MockTransport(site), cookies={"pre": "1"})
        site.route("http://example.com/", "a=1")

        with Session(client) as session:
            session.get("http://example.com/")
            assert len(client.cookies.jar) == 0

        assert client.cookies.get("pre") == "1"
        assert client.cookies.get("a") is None

        client.get("http://example.com/")
        assert site.cookie_header() == "pre=1"

    def test_httpx_client_satisfies_protocol(self, client):
        """Test that httpx.Client provides the client capability."""
        assert isinstance(client, HttpClient)

    def test_owned_client_closed(self):
        """Test that a client created by the session is closed with it."""
        with Session() as session:
            client = session.client
            assert isinstance(client, httpx.Client)
        assert client.is_closed

    def test_supplied_client_left_open(self, client):
        """Test that a caller's client is not closed by the session."""
        with Session(client):
            pass
        assert not client.is_closed

    def test_max_redirects_defaults_to_client(self, site):
        """Test that the redirect limit comes from the client when not given."""
        client = httpx.Client(transport=httpx.MockTransport(site), max_redirects=7)
        assert Session(client).max_redirects == 7
        assert Session(client, max_redirects=2).max_redirects == 2

    def test_save_and_load(self, client, site, tmp_path):
        """Test persisting the store and creating a session from the file."""
        path = tmp_path / "cookies.lwp"
        site.route("http://example.com/", "keep=1; Max-Age=3600", "tmp=1")

        session = Session(client, JarCookieStore(path))
        session.get("http://example.com/")
        assert session.save() == 1

        restored = Session.load(client, path)
        restored.get("http://example.com/")
        assert site.cookie_header() == "keep=1"

    def test_save_to_explicit_path(self, session, site, tmp_path):
        """Test saving a store that has no default path."""
        site.route("http://example.com/", "keep=1; Max-Age=3600")
        session.get("http://example.com/")

        path = tmp_path / "nested" / "cookies.lwp"
        assert session.save(path) == 1
        assert path.exists()

    def test_save_without_path_fails(self, session):
        """Test that saving needs a path."""
        with pytest.raises(CookieFileError):
            session.save()

    def test_save_unsupported_store(self, client):
        """Test that a store without persistence cannot be saved."""
        session = Session(client, RecordingStore())
        with pytest.raises(CookieFileError):
            session.save("/tmp/unused")

    def test_load_missing_file(self, client, tmp_path):
        """Test that loading a missing file raises CookieFileError."""
        with pytest.raises(CookieFileError) as exc_info:
            Session.load(client, tmp_path / "missing.lwp")
        assert exc_info.value.path.endswith("missing.lwp")


def test_mock_site_records_requests():
    """Test the mock site helper itself."""
    site = MockSite()
    site.route("http://example.com/", "a=1", status=204)
    with httpx.Client(transport=httpx.MockTransport(site)) as client:
        response = client.get("http://example.com/")
    assert response.status_code == 204
    assert site.urls() == ["http://example.com/"]
