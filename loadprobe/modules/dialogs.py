"""Counts window.alert / confirm / prompt calls."""

__version__ = "1.0"

DIALOG_METRICS = {
    "alert": "windowAlerts",
    "confirm": "windowConfirms",
    "prompt": "windowPrompts",
}


def module(api):
    for event, metric in DIALOG_METRICS.items():
        api.set_metric(metric)
        api.on(event, _counter(api, metric))


def _counter(api, metric):
    def count(message):
        api.incr_metric(metric)
        api.add_offender(metric, "%s", message)
    return count
