"""
CloudWatch custom metrics for webhook processing.

Metrics are best-effort: a CloudWatch failure is logged and never fails the
webhook.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Dict, Optional

from .aws_clients import get_cloudwatch

logger = logging.getLogger(__name__)

NAMESPACE = os.environ.get("CLOUDWATCH_NAMESPACE", "BillingSync")

# CloudWatch dimension values are limited to 1024 chars; event types are short
_MAX_DIMENSION_LENGTH = 100


def emit_metric(
    metric_name: str,
    value: float = 1.0,
    unit: str = "Count",
    dimensions: Optional[Dict[str, str]] = None,
) -> None:
    """
    Put one data point.

    Example:
        emit_metric("WebhookEventProcessed", dimensions={"EventType": "invoice.paid"})
    """
    datum = {
        "MetricName": metric_name,
        "Value": value,
        "Unit": unit,
        "Timestamp": datetime.now(timezone.utc),
        "Dimensions": [
            {"Name": name, "Value": str(val)[:_MAX_DIMENSION_LENGTH]}
            for name, val in (dimensions or {}).items()
        ],
    }
    try:
        get_cloudwatch().put_metric_data(Namespace=NAMESPACE, MetricData=[datum])
    except Exception as e:
        logger.warning(f"Failed to emit metric {metric_name}: {e}")


def emit_webhook_metric(event_type: str, success: bool) -> None:
    """Count a processed or failed webhook event by type."""
    emit_metric(
        "WebhookEventProcessed" if success else "WebhookEventFailed",
        dimensions={"EventType": event_type},
    )


def emit_classification_metric(reason: str) -> None:
    """Count classifier outcomes: invoice_subscription, recent_subscription or standalone."""
    emit_metric("PaymentClassified", dimensions={"Reason": reason})
