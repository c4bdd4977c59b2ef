"""Lazily constructed boto3 resources and the services built on them."""

from __future__ import annotations

from typing import Any

from learnhub.audit import AuditLogWriter
from learnhub.config import table_name
from learnhub.resources import AUDIT_LOGS, ResourceService, ResourceSpec
from learnhub.store import DynamoDbResourceStore


def dynamodb_table(name: str) -> Any:
    import boto3

    return boto3.resource("dynamodb").Table(name)


def s3_client() -> Any:
    import boto3

    return boto3.client("s3")


def cognito_client() -> Any:
    import boto3

    return boto3.client("cognito-idp")


def resource_store(spec: ResourceSpec) -> DynamoDbResourceStore:
    return DynamoDbResourceStore(dynamodb_table(table_name(spec.table_env)), spec.key_name)


def resource_service(spec: ResourceSpec) -> ResourceService:
    return ResourceService(spec, resource_store(spec))


def audit_writer(module: str) -> AuditLogWriter:
    return AuditLogWriter(resource_store(AUDIT_LOGS), module=module)
