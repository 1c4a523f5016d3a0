"""
Module: metrics.py
Description: CloudWatch custom metrics publishing.

Publishes per-run queue processing counts to CloudWatch.
Publishing failures are logged and never fail a run.

Dependencies: boto3, typing, logger
Author: Email Queue Team
"""

from typing import Dict, Optional

import boto3

from email_queue.utils.logger import get_logger

logger = get_logger(__name__)


class MetricsClient:
    """CloudWatch metrics client."""

    def __init__(self, namespace: str = "EmailQueue", region_name: Optional[str] = None):
        """
        Initialize metrics client.

        Args:
            namespace: CloudWatch metrics namespace
            region_name: AWS region (defaults to the boto3 session region)
        """
        self.namespace = namespace
        self.cloudwatch = boto3.client('cloudwatch', region_name=region_name)

        logger.info("Metrics client initialized", namespace=namespace)

    def put_metrics(self, values: Dict[str, float], unit: str = 'Count',
                    dimensions: Optional[Dict[str, str]] = None) -> None:
        """
        Publish several metrics in one PutMetricData call.

        Args:
            values: Metric name -> value
            unit: Metric unit (Count, Milliseconds, etc.)
            dimensions: Optional metric dimensions
        """
        try:
            metric_data = []
            for name, value in values.items():
                datum = {'MetricName': name, 'Value': value, 'Unit': unit}
                if dimensions:
                    datum['Dimensions'] = [
                        {'Name': k, 'Value': v}
                        for k, v in dimensions.items()
                    ]
                metric_data.append(datum)

            self.cloudwatch.put_metric_data(Namespace=self.namespace, MetricData=metric_data)

            logger.debug(
                "Metrics published to CloudWatch",
                metrics=values,
                unit=unit,
                namespace=self.namespace
            )

        except Exception as e:
            # Don't fail the run if metrics fail
            logger.warning(
                "Failed to publish metrics",
                metrics=values,
                error=str(e),
                namespace=self.namespace
            )

    def publish_run(self, summary, stage: Optional[str] = None) -> None:
        """Publish the counters of a RunSummary."""
        self.put_metrics(
            {
                'EmailsClaimed': summary.claimed,
                'EmailsSent': summary.sent,
                'EmailsRequeued': summary.requeued,
                'EmailsDead': summary.dead,
                'QueueAnomalies': len(summary.anomalies),
            },
            dimensions={'Stage': stage} if stage else None
        )
