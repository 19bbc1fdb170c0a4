"""Reconstruct the redirect chain of a navigation."""

from playwright.async_api import Request, Response

from linkprobe.pipeline.models.worker_protocol import RawHop


async def record_redirect_chain(response: Response) -> list[RawHop]:
    """Walk redirect origins back from the final response.

    Playwright links each request to the request it was redirected from, so
    the walk discovers hops newest first; the result is returned in request
    order. Requests without a response are skipped.

    Args:
        response: Final response returned by ``page.goto``

    Returns:
        Hops in chronological order, possibly empty

    """
    hops: list[RawHop] = []
    request: Request | None = response.request
    while request is not None:
        hop_response = await request.response()
        if hop_response is not None:
            headers = await hop_response.all_headers()
            hops.append(
                RawHop(
                    url=hop_response.url,
                    status_code=hop_response.status,
                    headers=dict(headers),
                )
            )
        request = request.redirected_from

    hops.reverse()
    return hops


def observed_urls(hops: list[RawHop], final_url: str) -> list[str]:
    """URLs seen during navigation; the final URL alone if no hops were kept."""
    urls = [hop.url for hop in hops]
    if not urls:
        urls.append(final_url)
    return urls
