"""
Lazily created boto3 clients shared by the billing-sync Lambdas.

Nothing is created at import time, so cold starts only pay for the clients a
handler actually uses, and tests can create them inside moto.
"""

import boto3

_clients: dict = {}


def _get(kind: str, service: str):
    key = (kind, service)
    if key not in _clients:
        factory = boto3.resource if kind == "resource" else boto3.client
        _clients[key] = factory(service)
    return _clients[key]


def get_dynamodb():
    """DynamoDB service resource."""
    return _get("resource", "dynamodb")


def get_secretsmanager():
    return _get("client", "secretsmanager")


def get_cloudwatch():
    return _get("client", "cloudwatch")


def reset_clients():
    """Forget all cached clients. Used in tests for clean state."""
    _clients.clear()
