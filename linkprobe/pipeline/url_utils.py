"""URL parsing helpers used for validation and parameter checks."""

from urllib.parse import SplitResult, parse_qsl, urlsplit

HTTP_SCHEMES = frozenset({"http", "https"})


def parse_url(value: str) -> SplitResult | None:
    """Parse an absolute URL, returning None when it is not one."""
    try:
        parts = urlsplit(value.strip())
        # Accessing port validates it
        parts.port  # noqa: B018
    except (ValueError, AttributeError):
        return None

    if not parts.scheme or not parts.netloc:
        return None
    return parts


def is_http_url(value: str) -> bool:
    """Check that value is an absolute http or https URL with a host."""
    parts = parse_url(value)
    return parts is not None and parts.scheme in HTTP_SCHEMES and bool(parts.hostname)


def parameters_preserved(first_url: str, final_url: str) -> bool:
    """Check that every query parameter of first_url survives to final_url.

    A parameter survives when the final URL carries the same key and its
    first value there is identical. Extra parameters on the final URL are
    allowed. A URL that fails to parse fails the check.
    """
    first = parse_url(first_url)
    final = parse_url(final_url)
    if first is None or final is None:
        return False

    final_params: dict[str, str] = {}
    for key, value in parse_qsl(final.query, keep_blank_values=True):
        final_params.setdefault(key, value)

    for key, value in parse_qsl(first.query, keep_blank_values=True):
        if key not in final_params:
            return False
        if final_params[key] != value:
            return False
    return True
