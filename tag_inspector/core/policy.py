"""
Policy Model Module
===================

In-memory representation of the tag compliance policy.

A policy is built once by :class:`~tag_inspector.core.policy_loader.PolicyLoader`
and is read-only afterwards: every map it holds is a ``MappingProxyType``.
The orchestrator and every scanner share the same instance for the
duration of a scan.

Classes
-------
TagCriteria
    Required, forbidden and specific tag rules.
ExcludedResource
    A precompiled resource-id pattern that skips a resource.
GlobalSettings
    Defaults that apply when a resource type has no override.
ResourceSettings
    Per resource type override (criteria, batch size, exclusions).
ComplianceLevel
    Named bundle of extra required and specific tags.
TagValidation
    Allowed values and pattern rules applied to present tags.
NotificationConfig
    Slack and email notification schema (parsed, never delivered).
Policy
    The complete policy document.

Example
-------
>>> from tag_inspector.core.policy_loader import load_policy_file
>>>
>>> policy = load_policy_file("policy.yaml")
>>> criteria = policy.effective_criteria("s3")
>>> excluded, reason = policy.is_excluded("s3", "sandbox-42")
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

DEFAULT_BATCH_SIZE = 10


def freeze_maps(instance: Any, *names: str) -> None:
    """Replace the named dict fields of a frozen dataclass with read-only copies."""
    for name in names:
        object.__setattr__(instance, name, MappingProxyType(dict(getattr(instance, name))))


@dataclass(frozen=True)
class TagCriteria:
    """
    Tag rules applied to a resource.

    Parameters
    ----------
    minimum_required_tags : int, default=0
        Minimum number of tags a resource must carry (0 disables the check).
    required_tags : tuple of str
        Tag keys that must be present, in evaluation order.
    forbidden_tags : tuple of str
        Tag keys that must not be present, in evaluation order.
    specific_tags : dict
        Tag keys that must carry an exact value.
    compliance_level : str, optional
        Name of a compliance level whose tags are added at evaluation time.
    """

    minimum_required_tags: int = 0
    required_tags: Tuple[str, ...] = ()
    forbidden_tags: Tuple[str, ...] = ()
    specific_tags: Mapping[str, str] = field(default_factory=dict)
    compliance_level: Optional[str] = None

    def __post_init__(self) -> None:
        freeze_maps(self, "specific_tags")

    def has_rules(self) -> bool:
        """Return True if any rule is configured on these criteria."""
        return bool(
            self.required_tags
            or self.forbidden_tags
            or self.specific_tags
            or self.compliance_level
            or self.minimum_required_tags > 0
        )

    def with_compliance_level(self, level: Optional[str]) -> TagCriteria:
        """
        Return a copy of the criteria with another compliance level.

        Parameters
        ----------
        level : str or None
            The compliance level name to use.

        Returns
        -------
        TagCriteria
            New criteria instance; the original is unchanged.
        """
        return TagCriteria(
            minimum_required_tags=self.minimum_required_tags,
            required_tags=self.required_tags,
            forbidden_tags=self.forbidden_tags,
            specific_tags=dict(self.specific_tags),
            compliance_level=level,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "minimum_required_tags": self.minimum_required_tags,
            "required_tags": list(self.required_tags),
            "forbidden_tags": list(self.forbidden_tags),
            "specific_tags": dict(self.specific_tags),
        }
        if self.compliance_level:
            data["compliance_level"] = self.compliance_level
        return data


@dataclass(frozen=True)
class ExcludedResource:
    """
    A resource-id pattern excluded from scanning.

    The regex is compiled once by the loader and stored next to its
    source string; equality only considers ``pattern`` and ``reason``.
    """

    pattern: str
    reason: str = ""
    regex: Optional[re.Pattern[str]] = field(default=None, compare=False, repr=False)

    def matches(self, resource_id: str) -> bool:
        """Return True if the resource id matches this exclusion."""
        regex = self.regex if self.regex is not None else re.compile(self.pattern)
        return regex.search(resource_id) is not None

    def to_dict(self) -> Dict[str, Any]:
        return {"pattern": self.pattern, "reason": self.reason}


@dataclass(frozen=True)
class GlobalSettings:
    """Defaults applied to every resource type."""

    enabled: bool = True
    batch_size: Optional[int] = None
    tag_criteria: TagCriteria = field(default_factory=TagCriteria)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "enabled": self.enabled,
            "tag_criteria": self.tag_criteria.to_dict(),
        }
        if self.batch_size is not None:
            data["batch_size"] = self.batch_size
        return data


@dataclass(frozen=True)
class ResourceSettings:
    """Settings for one resource type (keyed by service, e.g. ``s3``)."""

    enabled: bool = True
    batch_size: Optional[int] = None
    tag_criteria: TagCriteria = field(default_factory=TagCriteria)
    excluded_resources: Tuple[ExcludedResource, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "enabled": self.enabled,
            "tag_criteria": self.tag_criteria.to_dict(),
            "excluded_resources": [e.to_dict() for e in self.excluded_resources],
        }
        if self.batch_size is not None:
            data["batch_size"] = self.batch_size
        return data


@dataclass(frozen=True)
class ComplianceLevel:
    """Named bundle of extra required and specific tags."""

    required_tags: Tuple[str, ...] = ()
    specific_tags: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        freeze_maps(self, "specific_tags")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "required_tags": list(self.required_tags),
            "specific_tags": dict(self.specific_tags),
        }


@dataclass(frozen=True)
class TagValidation:
    """
    Value rules applied to tags present on a resource.

    Parameters
    ----------
    allowed_values : dict
        Tag key to the tuple of values it may take.
    pattern_rules : dict
        Tag key to the regex source its value must match.
    compiled_rules : dict
        Tag key to the compiled regex (filled by the loader).
    """

    allowed_values: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    pattern_rules: Mapping[str, str] = field(default_factory=dict)
    compiled_rules: Mapping[str, re.Pattern[str]] = field(
        default_factory=dict, compare=False, repr=False
    )

    def __post_init__(self) -> None:
        freeze_maps(self, "allowed_values", "pattern_rules", "compiled_rules")

    def has_rules(self) -> bool:
        return bool(self.allowed_values or self.pattern_rules)

    def rule_for(self, tag_key: str) -> Optional[re.Pattern[str]]:
        """Return the compiled pattern for a tag key, if one is configured."""
        if tag_key in self.compiled_rules:
            return self.compiled_rules[tag_key]
        if tag_key in self.pattern_rules:
            return re.compile(self.pattern_rules[tag_key])
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed_values": {k: list(v) for k, v in self.allowed_values.items()},
            "pattern_rules": dict(self.pattern_rules),
        }


@dataclass(frozen=True)
class SlackNotificationConfig:
    enabled: bool = False
    channels: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        freeze_maps(self, "channels")

    def to_dict(self) -> Dict[str, Any]:
        return {"enabled": self.enabled, "channels": dict(self.channels)}


@dataclass(frozen=True)
class EmailNotificationConfig:
    enabled: bool = False
    recipients: Tuple[str, ...] = ()
    frequency: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "enabled": self.enabled,
            "recipients": list(self.recipients),
        }
        if self.frequency:
            data["frequency"] = self.frequency
        return data


@dataclass(frozen=True)
class NotificationConfig:
    """
    Notification settings.

    Parsed and validated so that policy files stay portable, but the
    scanner never delivers notifications itself.
    """

    slack: SlackNotificationConfig = field(default_factory=SlackNotificationConfig)
    email: EmailNotificationConfig = field(default_factory=EmailNotificationConfig)
    frequency: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "slack": self.slack.to_dict(),
            "email": self.email.to_dict(),
        }
        if self.frequency:
            data["frequency"] = self.frequency
        return data


@dataclass(frozen=True)
class Policy:
    """
    The complete tag compliance policy.

    Parameters
    ----------
    version : str
        Policy schema version (non-empty).
    global_settings : GlobalSettings
        Defaults for every resource type (``global`` in YAML).
    resources : dict
        Resource type key (``s3``, ``ec2``) to its settings.
    compliance_levels : dict
        Level name to :class:`ComplianceLevel`.
    tag_validation : TagValidation
        Allowed values and pattern rules.
    notifications : NotificationConfig
        Notification schema.
    source : str
        Where the policy was loaded from; not part of equality.

    Examples
    --------
    >>> policy.effective_criteria("s3").required_tags
    ('Environment', 'Owner')
    >>> policy.is_excluded("s3", "sandbox-42")
    (True, 'ephemeral')
    """

    version: str
    global_settings: GlobalSettings = field(default_factory=GlobalSettings)
    resources: Mapping[str, ResourceSettings] = field(default_factory=dict)
    compliance_levels: Mapping[str, ComplianceLevel] = field(default_factory=dict)
    tag_validation: TagValidation = field(default_factory=TagValidation)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    source: str = field(default="<string>", compare=False)

    def __post_init__(self) -> None:
        freeze_maps(self, "resources", "compliance_levels")

    def _enabled_settings(self, resource_type: str) -> Optional[ResourceSettings]:
        settings = self.resources.get(resource_type)
        if settings is None or not settings.enabled:
            return None
        return settings

    def enabled_resource_types(self) -> List[str]:
        """Return the sorted resource type keys that are enabled."""
        return sorted(k for k, v in self.resources.items() if v.enabled)

    def effective_criteria(self, resource_type: str) -> TagCriteria:
        """
        Resolve the criteria for a resource type.

        Starts from the global criteria and applies the resource override:
        required and forbidden tags are concatenated (order preserved,
        duplicates left for the evaluator), specific tags are merged with
        the resource value winning, and the compliance level and minimum
        tag count are taken from the resource when it sets them.

        Parameters
        ----------
        resource_type : str
            Resource type key, e.g. ``"s3"``.

        Returns
        -------
        TagCriteria
            The effective criteria.
        """
        base = self.global_settings.tag_criteria
        settings = self._enabled_settings(resource_type)
        if settings is None:
            return base.with_compliance_level(base.compliance_level)

        override = settings.tag_criteria
        specific = dict(base.specific_tags)
        specific.update(override.specific_tags)

        return TagCriteria(
            minimum_required_tags=(
                override.minimum_required_tags or base.minimum_required_tags
            ),
            required_tags=base.required_tags + override.required_tags,
            forbidden_tags=base.forbidden_tags + override.forbidden_tags,
            specific_tags=specific,
            compliance_level=override.compliance_level or base.compliance_level,
        )

    def is_excluded(self, resource_type: str, resource_id: str) -> Tuple[bool, str]:
        """
        Check whether a resource is excluded by the policy.

        Parameters
        ----------
        resource_type : str
            Resource type key, e.g. ``"s3"``.
        resource_id : str
            Identifier of the resource.

        Returns
        -------
        tuple of (bool, str)
            ``(True, reason)`` for the first matching exclusion,
            ``(False, "")`` otherwise.
        """
        settings = self._enabled_settings(resource_type)
        if settings is None:
            return False, ""

        for excluded in settings.excluded_resources:
            if excluded.matches(resource_id):
                return True, excluded.reason

        return False, ""

    def batch_size_for(
        self,
        resource_type: str,
        default: int = DEFAULT_BATCH_SIZE,
    ) -> int:
        """
        Return the worker batch size for a resource type.

        Resource ``batch_size`` wins, then the global one, then ``default``.
        """
        settings = self.resources.get(resource_type)
        if settings is not None and settings.batch_size:
            return settings.batch_size
        if self.global_settings.batch_size:
            return self.global_settings.batch_size
        return default

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the policy back to its YAML document shape.

        Returns
        -------
        dict
            Lower-snake-case mapping accepted by the loader.
        """
        return {
            "version": self.version,
            "global": self.global_settings.to_dict(),
            "resources": {k: v.to_dict() for k, v in self.resources.items()},
            "compliance_levels": {
                k: v.to_dict() for k, v in self.compliance_levels.items()
            },
            "tag_validation": self.tag_validation.to_dict(),
            "notifications": self.notifications.to_dict(),
        }
