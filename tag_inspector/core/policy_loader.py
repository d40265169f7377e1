"""
Policy Loader Module
====================

Reads a YAML tag policy, validates it and builds an immutable
:class:`~tag_inspector.core.policy.Policy`.

Every regular expression in the document (exclusion patterns and tag
pattern rules) is compiled exactly once here and stored next to its
source string, so evaluation never recompiles.

Classes
-------
PolicyLoader
    Parses and validates policy documents.

Functions
---------
load_policy
    Load a policy from bytes or text.
load_policy_file
    Load a policy from a file path.
dump_policy
    Serialize a policy back to YAML.

Example
-------
>>> from tag_inspector.core.policy_loader import load_policy_file
>>>
>>> policy = load_policy_file("policy.yaml")
>>> print(policy.version)

Policy Document
---------------
::

    version: "1.0"
    global:
      enabled: true
      batch_size: 10
      tag_criteria:
        required_tags: [Environment, Owner]
        compliance_level: standard
    resources:
      s3:
        enabled: true
        batch_size: 5
        tag_criteria:
          forbidden_tags: [Temporary]
        excluded_resources:
          - pattern: "^sandbox-.*$"
            reason: ephemeral
    compliance_levels:
      high:
        required_tags: [CostCenter]
    tag_validation:
      allowed_values:
        Environment: [dev, staging, prod]
      pattern_rules:
        CostCenter: "^[0-9]{4}$"
    notifications:
      slack:
        enabled: false

See Also
--------
tag_inspector.core.policy : The policy model.
yaml : PyYAML, used for parsing and dumping.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from tag_inspector.core.exceptions import PolicyLoadError, PolicyValidationError
from tag_inspector.core.policy import (
    ComplianceLevel,
    EmailNotificationConfig,
    ExcludedResource,
    GlobalSettings,
    NotificationConfig,
    Policy,
    ResourceSettings,
    SlackNotificationConfig,
    TagCriteria,
    TagValidation,
)

# Module logger
logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[a-z0-9._%+-]+@[a-z0-9.-]+\.[a-z]{2,}$", re.IGNORECASE)
VALID_FREQUENCIES = ("hourly", "daily", "weekly")


class PolicyLoader:
    """
    Parses, validates and compiles tag policies.

    The loader is stateless; every call to :meth:`load` returns a new
    :class:`Policy`. Loading the same bytes twice yields equal policies.

    Examples
    --------
    >>> loader = PolicyLoader()
    >>> policy = loader.load(b"version: '1.0'", source="inline")
    >>> policy = loader.load_file("policy.yaml")

    Raises
    ------
    PolicyLoadError
        If the document is not valid YAML or has the wrong shape.
    PolicyValidationError
        If a validation rule fails.
    """

    def load(
        self,
        data: Union[bytes, str],
        source: str = "<string>",
    ) -> Policy:
        """
        Load a policy from raw YAML.

        Parameters
        ----------
        data : bytes or str
            The YAML document.
        source : str, default="<string>"
            Identifier used in error messages (usually the file name).

        Returns
        -------
        Policy
            The validated, precompiled policy.
        """
        if isinstance(data, bytes):
            try:
                data = data.decode("utf-8")
            except UnicodeDecodeError as e:
                raise PolicyLoadError(
                    f"{source}: policy file is not valid UTF-8: {e}",
                    source=source,
                )

        try:
            document = yaml.safe_load(data)
        except yaml.YAMLError as e:
            raise PolicyLoadError(
                f"{source}: failed to parse policy file: {e}",
                source=source,
            )

        if document is None:
            raise PolicyLoadError(f"{source}: policy file is empty", source=source)
        if not isinstance(document, dict):
            raise PolicyLoadError(
                f"{source}: policy document must be a mapping",
                source=source,
            )

        policy = _PolicyBuilder(source).build(document)
        logger.debug(
            "Loaded policy",
            extra={
                "source": source,
                "version": policy.version,
                "resources": sorted(policy.resources),
            },
        )
        return policy

    def load_file(self, path: Union[str, Path]) -> Policy:
        """
        Load a policy from a file.

        Parameters
        ----------
        path : str or Path
            Path to the YAML policy file.

        Returns
        -------
        Policy
            The validated, precompiled policy.
        """
        source = str(path)
        try:
            raw = Path(path).read_bytes()
        except OSError as e:
            raise PolicyLoadError(
                f"{source}: failed to read policy file: {e}",
                source=source,
            )
        return self.load(raw, source=source)


class _PolicyBuilder:
    """Walks a parsed YAML document and builds the policy model."""

    def __init__(self, source: str) -> None:
        self.source = source

    def _invalid(self, message: str) -> PolicyValidationError:
        return PolicyValidationError(f"{self.source}: {message}", source=self.source)

    def _malformed(self, message: str) -> PolicyLoadError:
        return PolicyLoadError(f"{self.source}: {message}", source=self.source)

    # -------------------------------------------------------------------------
    # Shape helpers
    # -------------------------------------------------------------------------

    def _mapping(self, value: Any, where: str) -> Dict[str, Any]:
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise self._malformed(f"'{where}' must be a mapping")
        return value

    def _list(self, value: Any, where: str) -> List[Any]:
        if value is None:
            return []
        if not isinstance(value, list):
            raise self._malformed(f"'{where}' must be a list")
        return value

    def _str_tuple(self, value: Any, where: str) -> Tuple[str, ...]:
        return tuple(_as_str(item) for item in self._list(value, where))

    def _str_map(self, value: Any, where: str) -> Dict[str, str]:
        return {
            _as_str(k): _as_str(v)
            for k, v in self._mapping(value, where).items()
        }

    def _bool(self, value: Any, where: str, default: bool) -> bool:
        if value is None:
            return default
        if not isinstance(value, bool):
            raise self._malformed(f"'{where}' must be a boolean")
        return value

    def _batch_size(self, value: Any, where: str) -> Optional[int]:
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, int):
            raise self._malformed(f"'{where}' must be an integer")
        if value <= 0:
            raise self._invalid(f"invalid batch size for {where}: {value}")
        return value

    def _compile(self, pattern: str, what: str) -> re.Pattern:
        try:
            return re.compile(pattern)
        except re.error as e:
            raise self._invalid(f"invalid {what} pattern '{pattern}': {e}")

    # -------------------------------------------------------------------------
    # Sections
    # -------------------------------------------------------------------------

    def build(self, document: Dict[str, Any]) -> Policy:
        version = document.get("version")
        version = "" if version is None else _as_str(version)
        if not version.strip():
            raise self._invalid("policy version is required")

        global_settings = self._global(self._mapping(document.get("global"), "global"))
        resources = self._resources(
            self._mapping(document.get("resources"), "resources")
        )
        levels = self._compliance_levels(
            self._mapping(document.get("compliance_levels"), "compliance_levels")
        )
        validation = self._tag_validation(
            self._mapping(document.get("tag_validation"), "tag_validation")
        )
        notifications = self._notifications(
            self._mapping(document.get("notifications"), "notifications")
        )

        return Policy(
            version=version,
            global_settings=global_settings,
            resources=resources,
            compliance_levels=levels,
            tag_validation=validation,
            notifications=notifications,
            source=self.source,
        )

    def _global(self, section: Dict[str, Any]) -> GlobalSettings:
        criteria = self._tag_criteria(
            self._mapping(section.get("tag_criteria"), "global.tag_criteria"),
            "global",
        )
        return GlobalSettings(
            enabled=self._bool(section.get("enabled"), "global.enabled", True),
            batch_size=self._batch_size(section.get("batch_size"), "global"),
            tag_criteria=criteria,
        )

    def _resources(self, section: Dict[str, Any]) -> Dict[str, ResourceSettings]:
        resources: Dict[str, ResourceSettings] = {}
        for key, raw in section.items():
            resource_type = _as_str(key)
            if not resource_type.strip():
                raise self._invalid("resource type key cannot be empty")
            where = f"resources.{resource_type}"
            settings = self._mapping(raw, where)

            criteria = self._tag_criteria(
                self._mapping(settings.get("tag_criteria"), f"{where}.tag_criteria"),
                f"resource type {resource_type}",
            )

            excluded: List[ExcludedResource] = []
            for entry in self._list(
                settings.get("excluded_resources"), f"{where}.excluded_resources"
            ):
                entry = self._mapping(entry, f"{where}.excluded_resources[]")
                pattern = _as_str(entry.get("pattern", ""))
                if not pattern:
                    raise self._invalid(
                        f"empty exclusion pattern for resource type {resource_type}"
                    )
                excluded.append(
                    ExcludedResource(
                        pattern=pattern,
                        reason=_as_str(entry.get("reason", "")),
                        regex=self._compile(
                            pattern, f"exclusion ({resource_type})"
                        ),
                    )
                )

            resources[resource_type] = ResourceSettings(
                enabled=self._bool(settings.get("enabled"), f"{where}.enabled", True),
                batch_size=self._batch_size(
                    settings.get("batch_size"), f"resource type {resource_type}"
                ),
                tag_criteria=criteria,
                excluded_resources=tuple(excluded),
            )
        return resources

    def _tag_criteria(self, section: Dict[str, Any], scope: str) -> TagCriteria:
        minimum = section.get("minimum_required_tags", 0)
        if minimum is None:
            minimum = 0
        if isinstance(minimum, bool) or not isinstance(minimum, int):
            raise self._malformed(f"minimum_required_tags for {scope} must be an integer")
        if minimum < 0:
            raise self._invalid(f"minimum required tags cannot be negative ({scope})")

        required = self._str_tuple(section.get("required_tags"), f"{scope} required_tags")
        forbidden = self._str_tuple(
            section.get("forbidden_tags"), f"{scope} forbidden_tags"
        )
        specific = self._str_map(section.get("specific_tags"), f"{scope} specific_tags")

        if any(not tag for tag in required):
            raise self._invalid(f"empty required tag found ({scope})")
        if any(not tag for tag in forbidden):
            raise self._invalid(f"empty forbidden tag found ({scope})")
        for key, value in specific.items():
            if not key:
                raise self._invalid(f"empty specific tag key found ({scope})")
            if not value:
                raise self._invalid(
                    f"empty specific tag value found for key: {key} ({scope})"
                )

        overlap = sorted(set(required) & set(forbidden))
        if overlap:
            raise self._invalid(
                f"tags both required and forbidden ({scope}): {', '.join(overlap)}"
            )

        level = section.get("compliance_level")
        level = _as_str(level) if level is not None else None

        return TagCriteria(
            minimum_required_tags=minimum,
            required_tags=required,
            forbidden_tags=forbidden,
            specific_tags=specific,
            compliance_level=level or None,
        )

    def _compliance_levels(self, section: Dict[str, Any]) -> Dict[str, ComplianceLevel]:
        levels: Dict[str, ComplianceLevel] = {}
        for key, raw in section.items():
            name = "" if key is None else _as_str(key)
            if not name.strip():
                raise self._invalid("compliance level name cannot be empty")
            where = f"compliance_levels.{name}"
            level = self._mapping(raw, where)

            required = self._str_tuple(level.get("required_tags"), f"{where}.required_tags")
            if any(not tag for tag in required):
                raise self._invalid(f"empty required tag in compliance level '{name}'")

            specific = self._str_map(level.get("specific_tags"), f"{where}.specific_tags")
            for tag_key, tag_value in specific.items():
                if not tag_key or not tag_value:
                    raise self._invalid(
                        f"empty key or value in specific tags of compliance level '{name}'"
                    )

            levels[name] = ComplianceLevel(required_tags=required, specific_tags=specific)
        return levels

    def _tag_validation(self, section: Dict[str, Any]) -> TagValidation:
        allowed: Dict[str, Tuple[str, ...]] = {}
        for key, values in self._mapping(
            section.get("allowed_values"), "tag_validation.allowed_values"
        ).items():
            tag = _as_str(key)
            values = self._str_tuple(values, f"tag_validation.allowed_values.{tag}")
            if not values:
                raise self._invalid(f"no allowed values specified for tag {tag}")
            if any(not v for v in values):
                raise self._invalid(f"empty value found in allowed values for tag {tag}")
            allowed[tag] = values

        patterns = self._str_map(section.get("pattern_rules"), "tag_validation.pattern_rules")
        compiled: Dict[str, re.Pattern] = {}
        for tag, pattern in patterns.items():
            if not pattern:
                raise self._invalid(f"empty pattern rule for tag {tag}")
            compiled[tag] = self._compile(pattern, f"tag rule ({tag})")

        return TagValidation(
            allowed_values=allowed,
            pattern_rules=patterns,
            compiled_rules=compiled,
        )

    def _frequency(self, value: Any, where: str) -> Optional[str]:
        if value is None or value == "":
            return None
        frequency = _as_str(value)
        if frequency not in VALID_FREQUENCIES:
            raise self._invalid(f"invalid {where} frequency: {frequency}")
        return frequency

    def _notifications(self, section: Dict[str, Any]) -> NotificationConfig:
        slack_raw = self._mapping(section.get("slack"), "notifications.slack")
        slack = SlackNotificationConfig(
            enabled=self._bool(slack_raw.get("enabled"), "notifications.slack.enabled", False),
            channels=self._str_map(slack_raw.get("channels"), "notifications.slack.channels"),
        )
        if slack.enabled:
            if not slack.channels:
                raise self._invalid("Slack notifications enabled but no channels specified")
            if any(not channel for channel in slack.channels.values()):
                raise self._invalid("empty Slack channel name found")

        email_raw = self._mapping(section.get("email"), "notifications.email")
        email = EmailNotificationConfig(
            enabled=self._bool(email_raw.get("enabled"), "notifications.email.enabled", False),
            recipients=self._str_tuple(
                email_raw.get("recipients"), "notifications.email.recipients"
            ),
            frequency=self._frequency(email_raw.get("frequency"), "email notification"),
        )
        if email.enabled:
            if not email.recipients:
                raise self._invalid("email notifications enabled but no recipients specified")
            for recipient in email.recipients:
                if not EMAIL_PATTERN.match(recipient):
                    raise self._invalid(f"invalid email format: {recipient}")

        return NotificationConfig(
            slack=slack,
            email=email,
            frequency=self._frequency(section.get("frequency"), "notification"),
        )


def _as_str(value: Any) -> str:
    """Coerce a YAML scalar to a string (``1234`` -> ``"1234"``)."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


# =============================================================================
# Convenience functions
# =============================================================================


def load_policy(data: Union[bytes, str], source: str = "<string>") -> Policy:
    """Load a policy from YAML bytes or text."""
    return PolicyLoader().load(data, source=source)


def load_policy_file(path: Union[str, Path]) -> Policy:
    """Load a policy from a YAML file."""
    return PolicyLoader().load_file(path)


def dump_policy(policy: Policy) -> str:
    """
    Serialize a policy back to YAML.

    Parsing the output again yields an equal policy.

    Parameters
    ----------
    policy : Policy
        The policy to serialize.

    Returns
    -------
    str
        YAML document.
    """
    return yaml.safe_dump(policy.to_dict(), sort_keys=False, default_flow_style=False)
