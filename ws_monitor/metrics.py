"""
Prometheus rendering of the check counters.
"""

from typing import Tuple

from prometheus_client import CONTENT_TYPE_LATEST
from prometheus_client.core import CounterMetricFamily
from prometheus_client.registry import Collector

CHECK_COUNT_METRIC = "check_count"
CHECK_COUNT_HELP = "Number of connection check results"

ENDPOINT_LABEL = "endpoint"
RESULT_LABEL = "result"

RESULT_SUCCESS = "SUCCESS"
# Kept for dashboard compatibility; counts every failed check, not only timeouts.
RESULT_FAILURE = "TIMEOUT"


class CheckCountCollector(Collector):
    """
    Collector exposing a fixed pair of check counts for one endpoint.
    """

    def __init__(self, endpoint: str, success_count: int, failure_count: int):
        self.endpoint = endpoint
        self.success_count = success_count
        self.failure_count = failure_count

    def collect(self):
        family = CounterMetricFamily(
            CHECK_COUNT_METRIC,
            CHECK_COUNT_HELP,
            labels=[ENDPOINT_LABEL, RESULT_LABEL],
        )
        family.add_metric([self.endpoint, RESULT_SUCCESS], self.success_count)
        family.add_metric([self.endpoint, RESULT_FAILURE], self.failure_count)
        yield family


def _escape_help(text: str) -> str:
    return text.replace("\\", r"\\").replace("\n", r"\n")


def _escape_label_value(value: str) -> str:
    return value.replace("\\", r"\\").replace("\n", r"\n").replace('"', r'\"')


def _format_family(family) -> str:
    """
    Write a counter family under its bare name.

    generate_latest() always appends ``_total`` to counter samples; scrapers
    of this exporter select on ``check_count`` itself, so the family is
    written out here with the same escaping rules.
    """
    lines = [
        f"# HELP {family.name} {_escape_help(family.documentation)}",
        f"# TYPE {family.name} {family.type}",
    ]
    for sample in family.samples:
        labels = ",".join(
            f'{name}="{_escape_label_value(value)}"' for name, value in sample.labels.items()
        )
        lines.append(f"{family.name}{{{labels}}} {int(sample.value)}")
    return "\n".join(lines) + "\n"


def render(label: str, success_count: int, failure_count: int) -> Tuple[bytes, str]:
    """
    Render the check counters in the Prometheus text exposition format.

    Both samples are always emitted, including when the counts are zero:

        check_count{endpoint="wss://X",result="SUCCESS"} 1
        check_count{endpoint="wss://X",result="TIMEOUT"} 0

    Args:
        label: Monitored endpoint, used verbatim as the endpoint label
        success_count: Number of successful checks
        failure_count: Number of failed checks

    Returns:
        Tuple[bytes, str]: Encoded metrics and their Content-Type

    Raises:
        ValueError: If the label is empty or a count is negative
    """
    if not label:
        raise ValueError("endpoint label cannot be empty")
    if success_count < 0 or failure_count < 0:
        raise ValueError("check counts cannot be negative")

    collector = CheckCountCollector(label, success_count, failure_count)
    body = "".join(_format_family(family) for family in collector.collect())
    return body.encode("utf-8"), CONTENT_TYPE_LATEST
