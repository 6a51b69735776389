"""Request parameter extraction shared by every converter.

Parameters come from the query string and, for form posts, from the
``application/x-www-form-urlencoded`` body. Both are merged into one
multi-valued mapping so converters can reject repeated parameters.
"""

from typing import Callable, Optional

from starlette.datastructures import MultiDict
from starlette.requests import Request

from .errors import OAuth2AuthenticationError

ErrorFactory = Callable[[str], OAuth2AuthenticationError]

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


async def get_parameters(request: Request) -> MultiDict:
    """Merge query and form parameters, keeping every value.

    The parsed result is cached on ``request.state`` so that several filters
    can read the body of the same request.
    """
    cached = getattr(request.state, "oauth_parameters", None)
    if cached is not None:
        return cached

    items = list(request.query_params.multi_items())
    content_type = request.headers.get("content-type", "")
    if request.method == "POST" and content_type.startswith(FORM_CONTENT_TYPE):
        form = await request.form()
        items.extend((key, value) for key, value in form.multi_items() if isinstance(value, str))

    parameters = MultiDict(items)
    request.state.oauth_parameters = parameters
    return parameters


def require_single(parameters: MultiDict, name: str, error: ErrorFactory) -> str:
    """Return the only value of ``name``; missing, empty or repeated raises."""
    values = parameters.getlist(name)
    if len(values) != 1 or not values[0]:
        raise error(name)
    return values[0]


def optional_single(parameters: MultiDict, name: str, error: ErrorFactory) -> Optional[str]:
    """Return the value of ``name`` or None; repeated raises."""
    values = parameters.getlist(name)
    if not values:
        return None
    if len(values) != 1:
        raise error(name)
    return values[0] or None


def split_scope(value: Optional[str]) -> frozenset:
    return frozenset(value.split()) if value else frozenset()
