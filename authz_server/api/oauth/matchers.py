"""Request matchers deciding whether a request targets an endpoint."""

from dataclasses import dataclass
from typing import FrozenSet, Iterable, Tuple

from starlette.requests import Request


def normalize_path(path: str) -> str:
    """Collapse duplicate slashes and drop a trailing slash."""
    parts = [part for part in path.split("/") if part]
    return "/" + "/".join(parts)


@dataclass(frozen=True)
class RequestMatcher:
    """Matches one path for a set of HTTP methods."""

    path: str
    methods: FrozenSet[str] = frozenset({"POST"})

    def __post_init__(self):
        object.__setattr__(self, "path", normalize_path(self.path))
        object.__setattr__(self, "methods", frozenset(method.upper() for method in self.methods))

    def matches(self, request: Request) -> bool:
        return request.method in self.methods and normalize_path(request.url.path) == self.path


@dataclass(frozen=True)
class OrRequestMatcher:
    """Matches when any of its matchers does."""

    matchers: Tuple[RequestMatcher, ...]

    def __init__(self, matchers: Iterable[RequestMatcher]):
        object.__setattr__(self, "matchers", tuple(matchers))

    def matches(self, request: Request) -> bool:
        return any(matcher.matches(request) for matcher in self.matchers)
