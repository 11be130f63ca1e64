"""Validation of cluster and provider specifications.

The validator collects every violated rule before failing so callers can fix
all of their input in one pass.

Examples
--------
>>> cluster = ClusterSpec("preview-1", 0, "n1", "1.15", 30, "europe-west4")
>>> "Cluster.NodeCount cannot be less than 1" in collect_cluster_violations(cluster)
True
"""

from __future__ import annotations

import re
from collections import abc as cabc
from dataclasses import dataclass

from clusterform._provisioner_errors import ValidationError
from clusterform._provisioner_models import (
    ClusterSpec,
    ProviderSpec,
    ProviderType,
    TargetProvider,
)

CLUSTER_NAME_PATTERN = re.compile(r"^[a-z][-a-z0-9]{0,19}(?<!-)$")
TARGET_PROVIDER_KEY = "target_provider"


def cannot_be_empty(field_name: str) -> str:
    return f"{field_name} cannot be empty"


def cannot_be_less(field_name: str, minimum: int) -> str:
    return f"{field_name} cannot be less than {minimum}"


def _custom_field(key: str) -> str:
    return f"Provider.CustomConfigurations[{key!r}]"


@dataclass(frozen=True, slots=True)
class CustomKeyRule:
    """Requirement for one Gardener custom configuration key.

    Attributes
    ----------
    key
        Key looked up in ``ProviderSpec.custom_configurations``.
    targets
        Target providers that require the key, or ``None`` when every target
        does.
    """

    key: str
    targets: frozenset[TargetProvider] | None = None

    def applies_to(self, target: TargetProvider | None) -> bool:
        """Return True when the key is mandatory for *target*.

        Examples
        --------
        >>> CustomKeyRule("vnetcidr", frozenset({TargetProvider.AZURE})).applies_to(
        ...     TargetProvider.GCP
        ... )
        False
        """
        if self.targets is None:
            return True
        return target in self.targets


GARDENER_CUSTOM_KEY_RULES: tuple[CustomKeyRule, ...] = (
    CustomKeyRule("target_seed"),
    CustomKeyRule("target_secret"),
    CustomKeyRule("disk_type"),
    CustomKeyRule("autoscaler_min"),
    CustomKeyRule("autoscaler_max"),
    CustomKeyRule("max_surge"),
    CustomKeyRule("max_unavailable"),
    CustomKeyRule("workercidr"),
    CustomKeyRule("zone", frozenset({TargetProvider.GCP, TargetProvider.AWS})),
    CustomKeyRule("publicscidr", frozenset({TargetProvider.AWS})),
    CustomKeyRule("vpccidr", frozenset({TargetProvider.AWS})),
    CustomKeyRule("internalscidr", frozenset({TargetProvider.AWS})),
    CustomKeyRule("vnetcidr", frozenset({TargetProvider.AZURE})),
)


def required_custom_keys(target: TargetProvider) -> tuple[str, ...]:
    """Return the custom configuration keys *target* requires, in rule order.

    Examples
    --------
    >>> required_custom_keys(TargetProvider.AZURE)[-1]
    'vnetcidr'
    """
    return tuple(
        rule.key for rule in GARDENER_CUSTOM_KEY_RULES if rule.applies_to(target)
    )


def parse_target_provider(value: object) -> TargetProvider | None:
    """Return the target provider named by *value*, or None if unrecognised.

    Examples
    --------
    >>> parse_target_provider("aws")
    <TargetProvider.AWS: 'aws'>
    >>> parse_target_provider("openstack") is None
    True
    """
    try:
        return TargetProvider(str(value))
    except ValueError:
        return None


def collect_cluster_violations(cluster: ClusterSpec) -> list[str]:
    """Return the violated cluster rules."""
    violations: list[str] = []
    if cluster.node_count < 1:
        violations.append(cannot_be_less("Cluster.NodeCount", 1))
    if not CLUSTER_NAME_PATTERN.fullmatch(cluster.name):
        violations.append(
            "Cluster.Name must start with a lowercase letter followed by up to 19 "
            "lowercase letters, numbers, or hyphens, and cannot end with a hyphen"
        )
    if not cluster.location:
        violations.append(cannot_be_empty("Cluster.Location"))
    if not cluster.machine_type:
        violations.append(cannot_be_empty("Cluster.MachineType"))
    if not cluster.kubernetes_version:
        violations.append(cannot_be_empty("Cluster.KubernetesVersion"))
    if cluster.disk_size_gb < 1:
        violations.append(cannot_be_less("Cluster.DiskSizeGB", 1))
    return violations


def collect_provider_violations(provider: ProviderSpec) -> list[str]:
    """Return the violated provider rules, custom configuration included."""
    violations: list[str] = []
    if provider.type is not ProviderType.GARDENER:
        violations.append("Provider.Type has to be gardener")
    if not provider.credentials_file_path:
        violations.append(cannot_be_empty("Provider.CredentialsFilePath"))
    if not provider.project_name:
        violations.append(cannot_be_empty("Provider.ProjectName"))
    violations.extend(collect_custom_violations(provider.custom_configurations))
    return violations


def collect_custom_violations(custom: cabc.Mapping[str, str]) -> list[str]:
    """Return the violated Gardener custom configuration rules."""
    violations: list[str] = []
    target: TargetProvider | None = None
    if TARGET_PROVIDER_KEY not in custom:
        violations.append(cannot_be_empty(_custom_field(TARGET_PROVIDER_KEY)))
    else:
        target = parse_target_provider(custom[TARGET_PROVIDER_KEY])
        if target is None:
            choices = ", ".join(member.value for member in TargetProvider)
            violations.append(
                f"{_custom_field(TARGET_PROVIDER_KEY)} has to be one of: {choices}"
            )

    violations.extend(
        cannot_be_empty(_custom_field(rule.key))
        for rule in GARDENER_CUSTOM_KEY_RULES
        if rule.applies_to(target) and rule.key not in custom
    )
    return violations


def validate_gardener_inputs(cluster: ClusterSpec, provider: ProviderSpec) -> None:
    """Validate a Gardener cluster request.

    Parameters
    ----------
    cluster : ClusterSpec
        Requested cluster.
    provider : ProviderSpec
        Provider carrying the Gardener custom configuration.

    Raises
    ------
    ValidationError
        If any rule is violated; the error lists every violation.

    Examples
    --------
    >>> validate_gardener_inputs(cluster, provider)
    """
    violations = collect_cluster_violations(cluster)
    violations.extend(collect_provider_violations(provider))
    if violations:
        raise ValidationError(violations)
