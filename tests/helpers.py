"""Test helpers: a mock site for ``httpx.MockTransport``."""

from dataclasses import dataclass, field

import httpx


@dataclass
class Route:
    """Canned response for one URL of the mock site."""

    status: int = 200
    set_cookies: list[str] = field(default_factory=list)
    location: str | None = None


class MockSite:
    """Request handler for ``httpx.MockTransport``.

    Records every request it receives and answers with the Set-Cookie and
    Location headers configured for the request URL.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[str, Route] = {}

    def route(
        self,
        url: str,
        *set_cookies: str,
        status: int = 200,
        location: str | None = None,
    ) -> None:
        self._routes[url] = Route(status=status, set_cookies=list(set_cookies), location=location)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self._routes.get(str(request.url), Route())
        headers = [("Set-Cookie", value) for value in route.set_cookies]
        if route.location:
            headers.append(("Location", route.location))
        return httpx.Response(route.status, headers=headers, text="ok")

    def cookie_header(self, index: int = -1) -> str | None:
        """Get the Cookie header of a recorded request."""
        return self.requests[index].headers.get("Cookie")

    def urls(self) -> list[str]:
        return [str(r.url) for r in self.requests]


def cookie_pairs(header: str | None) -> set[str]:
    """Split a Cookie header into its name=value pairs."""
    if not header:
        return set()
    return {pair.strip() for pair in header.split(";")}
