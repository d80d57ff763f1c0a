"""Navigation Timing milestones measured relative to the main response end.

Sets ``domInteractive``, ``domContentLoaded``, ``domContentLoadedEnd`` and
``domComplete`` (ms) once the page finished loading.
"""

__version__ = "1.0"

TIMING_JS = """() => {
    const t = window.performance && window.performance.timing;
    if (!t) {
        return null;
    }
    return {
        responseEnd: t.responseEnd,
        domInteractive: t.domInteractive,
        domContentLoaded: t.domContentLoadedEventStart,
        domContentLoadedEnd: t.domContentLoadedEventEnd,
        domComplete: t.domComplete
    };
}"""

MILESTONES = ("domInteractive", "domContentLoaded", "domContentLoadedEnd", "domComplete")


def module(api):
    for name in MILESTONES:
        api.set_metric(name)

    async def measure(*_):
        timing = await api.evaluate(TIMING_JS)
        if not timing or not timing.get("responseEnd"):
            api.log("Navigation Timing not available")
            return

        response_end = timing["responseEnd"]
        for name in MILESTONES:
            value = timing.get(name) or 0
            if value >= response_end:
                api.set_metric(name, value - response_end, True)
                api.log("%s: %d ms", name, value - response_end)

    api.on("loadFinished", measure)
