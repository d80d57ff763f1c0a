"""HTTP level request statistics.

- ``notFound``: responses with HTTP 404
- ``redirects``: responses with HTTP 3xx
- ``failedRequests``: requests that failed or were aborted
"""

__version__ = "1.0"


def module(api):
    api.set_metric("notFound")
    api.set_metric("redirects")
    api.set_metric("failedRequests")

    def on_recv(entry, *_):
        if entry.status == 404:
            api.incr_metric("notFound")
            api.add_offender("notFound", "%s", entry.url)
        elif entry.is_redirect:
            api.incr_metric("redirects")
            api.add_offender("redirects", "%s (HTTP %d)", entry.url, entry.status)

    def on_abort(entry, *_):
        api.incr_metric("failedRequests")
        api.add_offender("failedRequests", "%s (%s)", entry.url, entry.error_text or "aborted")

    api.on("recv", on_recv)
    api.on("abort", on_abort)
