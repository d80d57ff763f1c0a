"""Counts JavaScript errors raised in the page (``jsErrors``)."""

__version__ = "1.0"


def module(api):
    api.set_metric("jsErrors")

    def on_error(message, trace=None):
        api.incr_metric("jsErrors")

        location = (trace or "").strip().splitlines()
        if location:
            api.add_offender("jsErrors", "%s - %s", message, location[0].strip())
        else:
            api.add_offender("jsErrors", "%s", message)

    api.on("jserror", on_error)
