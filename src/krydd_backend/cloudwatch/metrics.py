import logging
import typing

import boto3
from botocore.exceptions import BotoCoreError, ClientError

_LOGGER = logging.getLogger(__name__)

KRYDD_METRICS_NAMESPACE = "Krydd/Api"


class MetricsManager:
    """Buffers metrics for one Lambda invocation and publishes them to CloudWatch on flush."""

    def __init__(
        self,
        namespace: str = KRYDD_METRICS_NAMESPACE,
        service: typing.Optional[str] = None,
        cloudwatch_client: typing.Any = None,
    ) -> None:
        self._namespace = namespace
        self._client = cloudwatch_client
        self._metrics: dict[str, tuple[float, str]] = {}
        self._dimensions: dict[str, str] = {}
        if service:
            self.set_dimension("Service", service)

    def set_dimension(self, name: str, value: str) -> None:
        self._dimensions[name] = value

    def put_metric(self, name: str, value: float, unit: str = "Count") -> None:
        """Queues a metric. Counts recorded more than once in an invocation are summed."""
        if name in self._metrics and unit == "Count":
            value += self._metrics[name][0]
        self._metrics[name] = (value, unit)
        _LOGGER.info(f"Queued metric '{name}' with value {value} in namespace '{self._namespace}'")

    def flush(self) -> None:
        """
        Publishes all queued metrics. A failed publish is logged and the metrics are dropped;
        it never fails the request being served.
        """
        if not self._metrics:
            return

        dimensions = [{"Name": name, "Value": value} for name, value in self._dimensions.items()]
        metric_data = [
            {"MetricName": name, "Value": value, "Unit": unit, "Dimensions": dimensions}
            for name, (value, unit) in self._metrics.items()
        ]
        try:
            if self._client is None:
                self._client = boto3.client("cloudwatch")
            self._client.put_metric_data(Namespace=self._namespace, MetricData=metric_data)
            _LOGGER.info(f"Flushed {len(metric_data)} metrics to namespace '{self._namespace}'.")
        except (ClientError, BotoCoreError) as e:
            _LOGGER.error(f"Failed to publish {len(metric_data)} metrics to '{self._namespace}': {e}", exc_info=True)
        finally:
            self._metrics = {}
