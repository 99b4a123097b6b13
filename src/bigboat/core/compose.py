"""Compose enhancement: turn an app definition into a deployable descriptor.

Every service in the docker compose definition is labelled with the
instance and app it belongs to, so the agent can attribute containers back to
instances when it reports snapshots.
"""

from typing import Any

import yaml
from pydantic.alias_generators import to_camel, to_snake

from bigboat.schemas.models import App, AppDescriptor
from bigboat.utils.errors import ComposeError

LABEL_PREFIX = "bigboat"


def normalize_options(options: dict[str, Any] | None) -> dict[str, Any]:
    """Snake-case the top-level option keys (``storageBucket`` -> ``storage_bucket``)."""
    return {to_snake(k): v for k, v in (options or {}).items()}


def wire_options(options: dict[str, Any]) -> dict[str, Any]:
    """Camel-case the top-level option keys for the agent (``storageBucket``)."""
    return {to_camel(k): v for k, v in options.items()}


def effective_options(instance_name: str, options: dict[str, Any] | None) -> dict[str, Any]:
    """Caller options when given, otherwise a bucket named after the instance."""
    normalized = normalize_options(options)
    if normalized:
        return normalized
    return {"storage_bucket": instance_name}


def _labels_as_dict(labels: Any, service: str, app_name: str) -> dict[str, str]:
    if labels is None:
        return {}
    if isinstance(labels, dict):
        return {str(k): "" if v is None else str(v) for k, v in labels.items()}
    if isinstance(labels, list):
        result = {}
        for item in labels:
            key, _, value = str(item).partition("=")
            result[key] = value
        return result
    raise ComposeError(app_name, f"labels of service {service} must be a map or list")


def _service_map(definition: dict[str, Any]) -> dict[str, Any]:
    # compose v2+ nests services, v1 keeps them at the top level
    services = definition.get("services")
    if isinstance(services, dict):
        return services
    return definition


def enhance_compose(
    instance_name: str, options: dict[str, Any], app: App | AppDescriptor
) -> AppDescriptor:
    """Merge instance options into an app's compose definition.

    Args:
        instance_name: Instance being started
        options: Effective start options
        app: Stored app

    Returns:
        Descriptor whose docker compose carries the bigboat labels

    Raises:
        ComposeError: If the compose definition is not a YAML mapping of services
    """
    try:
        definition = yaml.safe_load(app.docker_compose) if app.docker_compose else {}
    except yaml.YAMLError as e:
        raise ComposeError(app.name, str(e)) from e

    if definition is None:
        definition = {}
    if not isinstance(definition, dict):
        raise ComposeError(app.name, "docker compose must be a mapping")

    bucket = options.get("storage_bucket")
    for service_name, service in _service_map(definition).items():
        if not isinstance(service, dict):
            raise ComposeError(app.name, f"service {service_name} must be a mapping")

        labels = _labels_as_dict(service.get("labels"), service_name, app.name)
        labels.update(
            {
                f"{LABEL_PREFIX}.instance.name": instance_name,
                f"{LABEL_PREFIX}.service.name": str(service_name),
                f"{LABEL_PREFIX}.application.name": app.name,
                f"{LABEL_PREFIX}.application.version": app.version,
            }
        )
        if bucket:
            labels[f"{LABEL_PREFIX}.storage.bucket"] = str(bucket)
        service["labels"] = labels

    return AppDescriptor(
        name=app.name,
        version=app.version,
        docker_compose=yaml.safe_dump(definition, sort_keys=False),
        bigboat_compose=app.bigboat_compose,
    )


def derive_tags(bigboat_compose: str, app_name: str = "<app>") -> list[str]:
    """Tags listed in a bigboat compose definition, empty when it has none.

    Raises:
        ComposeError: If the definition is not valid YAML
    """
    try:
        parsed = yaml.safe_load(bigboat_compose) if bigboat_compose else None
    except yaml.YAMLError as e:
        raise ComposeError(app_name, str(e)) from e
    if not isinstance(parsed, dict):
        return []
    tags = parsed.get("tags") or []
    if not isinstance(tags, list):
        return [str(tags)]
    return [str(t) for t in tags]
