"""Parameter schema for the AWS Backup module

Every input of the module is described here as a pydantic model. Field level rules (formats, bounds, allowed
values and invariants within a single object) are enforced on construction. Rules that span several objects, like
a rule's retention versus the vault lock, are enforced when the parameters are normalized, see
`cdk_aws_backup.plans.normalize`.

Parameters can be built in Python or loaded from a JSON or YAML file with `load_parameters`.
"""
# Standard
import json
import logging
from pathlib import Path
import re
from typing import Any, Dict, List, Optional, Union
# Installed
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
import yaml
# Local
from cdk_aws_backup.constructs.constants import (
    AUDIT_NAME_PATTERN,
    BACKUP_NAME_PATTERN,
    DEFAULT_VAULT_NAME,
    IAM_ROLE_ARN_PATTERN,
    KMS_KEY_ARN_PATTERN,
    MAX_RETENTION_DAYS,
    MIN_CHANGEABLE_FOR_DAYS,
    MIN_COLD_STORAGE_DAYS,
    MIN_COMPLETION_WINDOW_MINUTES,
    MIN_START_WINDOW_MINUTES,
    ORG_TARGET_ID_PATTERN,
    RESOURCE_ARN_PATTERN,
    SCHEDULE_PATTERN,
    SNS_TOPIC_ARN_PATTERN,
    TIMEZONE_PATTERN,
    VAULT_ARN_PATTERN,
    VAULT_NAME_PATTERN,
    AuditControl,
    ReportFormat,
    ReportTemplate,
    VaultEvent,
)
from cdk_aws_backup.errors import BackupConfigurationError

logger = logging.getLogger(__name__)

# Organization policies may reference the member account with the $account variable
ORG_IAM_ROLE_ARN_PATTERN = r"^arn:aws[a-z\-]*:iam::(\d{12}|\$account):role/.+$"
DEFAULT_ORG_IAM_ROLE_ARN = "arn:aws:iam::$account:role/service-role/AWSBackupDefaultServiceRole"


def _check_pattern(value: Optional[str], pattern: str, what: str) -> Optional[str]:
    """Raise ValueError unless value is None or fully matches pattern"""
    if value is not None and not re.match(pattern, value):
        raise ValueError(f"{value!r} is not a valid {what} (expected to match {pattern})")
    return value


def _named_list(value: Any) -> Any:
    """Accept a map of name -> object wherever a list of named objects is expected"""
    if isinstance(value, dict):
        return [{"name": name, **(item or {})} for name, item in value.items()]
    return value


class _Parameters(BaseModel):
    """Base for all parameter models. Unknown keys are rejected."""
    model_config = ConfigDict(extra="forbid")


class LifecycleParameters(_Parameters):
    """Retention and storage tiering for recovery points"""
    cold_storage_after: Optional[int] = Field(
        None, ge=1, le=MAX_RETENTION_DAYS,
        description="Days after creation that a recovery point is moved to cold storage.")
    delete_after: Optional[int] = Field(
        None, ge=1, le=MAX_RETENTION_DAYS,
        description="Days after creation that a recovery point is deleted.")
    opt_in_to_archive_for_supported_resources: bool = Field(
        False, description="Move supported resource types to cold storage after `cold_storage_after` days.")

    @model_validator(mode="after")
    def _check_cold_storage_period(self):
        if self.cold_storage_after is not None and self.delete_after is not None:
            if self.delete_after < self.cold_storage_after + MIN_COLD_STORAGE_DAYS:
                raise ValueError(
                    f"delete_after ({self.delete_after}) must be at least {MIN_COLD_STORAGE_DAYS} days greater than "
                    f"cold_storage_after ({self.cold_storage_after})")
        if self.opt_in_to_archive_for_supported_resources and self.cold_storage_after is None:
            raise ValueError("opt_in_to_archive_for_supported_resources requires cold_storage_after")
        return self


class CopyActionParameters(_Parameters):
    """Copy of each recovery point into another (possibly cross-region or cross-account) vault"""
    destination_vault_arn: str = Field(description="ARN of the destination backup vault.")
    lifecycle: Optional[LifecycleParameters] = Field(None, description="Lifecycle of the copied recovery points.")

    @field_validator("destination_vault_arn")
    @classmethod
    def _check_arn(cls, value):
        return _check_pattern(value, VAULT_ARN_PATTERN, "backup vault ARN")


class RuleParameters(_Parameters):
    """A scheduled backup rule"""
    name: str = Field(description="Rule name.")
    target_vault_name: Optional[str] = Field(
        None, description="Vault receiving the recovery points. Defaults to the module vault, or `Default`.")
    schedule: Optional[str] = Field(None, description="Schedule as a `cron(...)` or `rate(...)` expression.")
    schedule_expression_timezone: Optional[str] = Field(
        None, description="Time zone of the schedule expression, e.g. `Europe/Paris`.")
    start_window: Optional[int] = Field(
        None, ge=MIN_START_WINDOW_MINUTES,
        description="Minutes after a scheduled backup before the job is canceled if it has not started.")
    completion_window: Optional[int] = Field(
        None, ge=MIN_COMPLETION_WINDOW_MINUTES,
        description="Minutes after a backup starts before it is canceled if not complete.")
    enable_continuous_backup: bool = Field(
        False, description="Create continuous backups (point in time restore) for supported resources.")
    lifecycle: Optional[LifecycleParameters] = Field(None, description="Recovery point lifecycle.")
    copy_actions: List[CopyActionParameters] = Field(default_factory=list, description="Copy actions.")
    recovery_point_tags: Dict[str, str] = Field(
        default_factory=dict, description="Tags assigned to the recovery points.")

    @field_validator("name")
    @classmethod
    def _check_name(cls, value):
        return _check_pattern(value, BACKUP_NAME_PATTERN, "rule name")

    @field_validator("target_vault_name")
    @classmethod
    def _check_vault_name(cls, value):
        return _check_pattern(value, VAULT_NAME_PATTERN, "vault name")

    @field_validator("schedule")
    @classmethod
    def _check_schedule(cls, value):
        return _check_pattern(value, SCHEDULE_PATTERN, "schedule expression")

    @field_validator("schedule_expression_timezone")
    @classmethod
    def _check_timezone(cls, value):
        return _check_pattern(value, TIMEZONE_PATTERN, "time zone")

    @model_validator(mode="after")
    def _check_windows(self):
        if self.start_window is not None and self.completion_window is not None:
            if self.completion_window < self.start_window + MIN_START_WINDOW_MINUTES:
                raise ValueError(
                    f"completion_window ({self.completion_window}) must be at least {MIN_START_WINDOW_MINUTES} "
                    f"minutes greater than start_window ({self.start_window})")
        return self


class SelectionTagParameters(_Parameters):
    """A tag condition selecting resources"""
    type: str = Field("STRINGEQUALS", description="Condition type. Only `STRINGEQUALS` is supported by AWS.")
    key: str = Field(min_length=1, description="Tag key.")
    value: str = Field(description="Tag value.")

    @field_validator("type")
    @classmethod
    def _check_type(cls, value):
        if value != "STRINGEQUALS":
            raise ValueError(f"Unsupported selection tag type {value!r}, only STRINGEQUALS is supported")
        return value


class SelectionConditionsParameters(_Parameters):
    """Tag conditions, combined with AND, narrowing a selection"""
    string_equals: Dict[str, str] = Field(default_factory=dict)
    string_like: Dict[str, str] = Field(default_factory=dict)
    string_not_equals: Dict[str, str] = Field(default_factory=dict)
    string_not_like: Dict[str, str] = Field(default_factory=dict)

    @field_validator("string_equals", "string_like", "string_not_equals", "string_not_like")
    @classmethod
    def _check_keys(cls, value):
        for key in value:
            if not key.startswith("aws:ResourceTag/"):
                raise ValueError(f"Condition key {key!r} must start with 'aws:ResourceTag/'")
        return value

    def is_empty(self) -> bool:
        return not (self.string_equals or self.string_like or self.string_not_equals or self.string_not_like)


class SelectionParameters(_Parameters):
    """Resources, by ARN or tag, that a plan's rules apply to"""
    name: str = Field(description="Selection name.")
    resources: List[str] = Field(default_factory=list, description="ARNs (wildcards allowed) to back up.")
    not_resources: List[str] = Field(default_factory=list, description="ARNs excluded from the selection.")
    conditions: Optional[SelectionConditionsParameters] = Field(None, description="Tag conditions.")
    selection_tags: List[SelectionTagParameters] = Field(default_factory=list, description="Tags to select by.")

    @field_validator("name")
    @classmethod
    def _check_name(cls, value):
        return _check_pattern(value, BACKUP_NAME_PATTERN, "selection name")

    @field_validator("resources", "not_resources")
    @classmethod
    def _check_arns(cls, value):
        for arn in value:
            _check_pattern(arn, RESOURCE_ARN_PATTERN, "resource ARN")
        return value

    @model_validator(mode="after")
    def _check_not_empty(self):
        if not self.resources and not self.selection_tags:
            raise ValueError(f"Selection {self.name!r} needs resources or selection_tags")
        return self


class PlanParameters(_Parameters):
    """One backup plan within the `plans` map"""
    name: Optional[str] = Field(None, description="Plan name. Defaults to the map key.")
    rules: List[RuleParameters] = Field(min_length=1, description="Rules of the plan.")
    selections: List[SelectionParameters] = Field(default_factory=list, description="Selections of the plan.")
    tags: Dict[str, str] = Field(default_factory=dict, description="Tags of the plan.")

    @field_validator("name")
    @classmethod
    def _check_name(cls, value):
        return _check_pattern(value, BACKUP_NAME_PATTERN, "plan name")

    @field_validator("selections", mode="before")
    @classmethod
    def _accept_selection_map(cls, value):
        return _named_list(value)


class NotificationParameters(_Parameters):
    """SNS notifications for vault events"""
    sns_topic_arn: str = Field(description="ARN of the SNS topic receiving vault events.")
    backup_vault_events: List[VaultEvent] = Field(
        default_factory=lambda: list(VaultEvent), description="Events to notify. Defaults to all events.")

    @field_validator("sns_topic_arn")
    @classmethod
    def _check_arn(cls, value):
        return _check_pattern(value, SNS_TOPIC_ARN_PATTERN, "SNS topic ARN")


class AuditControlParameters(_Parameters):
    """A control of an Audit Manager framework"""
    name: AuditControl = Field(description="Control name.")
    input_parameters: Dict[str, str] = Field(default_factory=dict, description="Control input parameters.")
    compliance_resource_types: List[str] = Field(default_factory=list, description="Resource types in scope.")
    compliance_resource_ids: List[str] = Field(default_factory=list, description="Resource IDs in scope.")
    tags: Dict[str, str] = Field(default_factory=dict, description="Tags of the resources in scope.")

    @field_validator("input_parameters", mode="before")
    @classmethod
    def _stringify(cls, value):
        # AWS takes every control input as a string
        if isinstance(value, dict):
            return {key: str(item) for key, item in value.items()}
        return value


class AuditFrameworkParameters(_Parameters):
    """AWS Backup Audit Manager framework"""
    create: bool = Field(False, description="Create the framework.")
    framework_name: Optional[str] = Field(None, description="Framework name.")
    description: Optional[str] = Field(None, max_length=1024, description="Framework description.")
    controls: List[AuditControlParameters] = Field(default_factory=list, description="Framework controls.")

    @field_validator("framework_name")
    @classmethod
    def _check_name(cls, value):
        return _check_pattern(value, AUDIT_NAME_PATTERN, "framework name")

    @model_validator(mode="after")
    def _check_complete(self):
        if self.create:
            if not self.framework_name:
                raise ValueError("framework_name is required when create is true")
            if not self.controls:
                raise ValueError("At least one control is required when create is true")
        return self


class ReportPlanParameters(_Parameters):
    """AWS Backup Audit Manager report plan"""
    name: str = Field(description="Report plan name.")
    description: Optional[str] = Field(None, max_length=1024, description="Report plan description.")
    formats: List[ReportFormat] = Field(
        default_factory=lambda: [ReportFormat.CSV], min_length=1, description="Report file formats.")
    s3_bucket_name: str = Field(min_length=3, max_length=63, description="Bucket receiving the reports.")
    s3_key_prefix: Optional[str] = Field(None, description="Key prefix of the reports.")
    report_template: ReportTemplate = Field(description="Report template.")
    accounts: List[str] = Field(default_factory=list, description="Accounts covered by the report.")
    regions: List[str] = Field(default_factory=list, description="Regions covered by the report.")
    organization_units: List[str] = Field(default_factory=list, description="Organization units covered.")
    framework_arns: List[str] = Field(
        default_factory=list,
        description="Frameworks covered by a compliance report. Defaults to the module framework.")

    @field_validator("name")
    @classmethod
    def _check_name(cls, value):
        return _check_pattern(value, AUDIT_NAME_PATTERN, "report plan name")


class OrganizationPolicyPlanParameters(_Parameters):
    """A plan pushed to member accounts through an AWS Organizations backup policy"""
    regions: List[str] = Field(min_length=1, description="Regions where the plan applies.")
    target_vault_name: str = Field(DEFAULT_VAULT_NAME, description="Vault receiving the recovery points.")
    schedule: str = Field(description="Schedule as a `cron(...)` or `rate(...)` expression.")
    start_window: Optional[int] = Field(None, ge=MIN_START_WINDOW_MINUTES, description="Start window in minutes.")
    completion_window: Optional[int] = Field(
        None, ge=MIN_COMPLETION_WINDOW_MINUTES, description="Completion window in minutes.")
    lifecycle: Optional[LifecycleParameters] = Field(None, description="Recovery point lifecycle.")
    recovery_point_tags: Dict[str, str] = Field(default_factory=dict, description="Recovery point tags.")
    copy_actions: List[CopyActionParameters] = Field(default_factory=list, description="Copy actions.")
    selection_tags: List[SelectionTagParameters] = Field(
        min_length=1, description="Tags selecting the resources in member accounts.")
    iam_role_arn: str = Field(DEFAULT_ORG_IAM_ROLE_ARN, description="Role assumed by AWS Backup in member accounts.")

    @field_validator("target_vault_name")
    @classmethod
    def _check_vault_name(cls, value):
        return _check_pattern(value, VAULT_NAME_PATTERN, "vault name")

    @field_validator("schedule")
    @classmethod
    def _check_schedule(cls, value):
        return _check_pattern(value, SCHEDULE_PATTERN, "schedule expression")

    @field_validator("iam_role_arn")
    @classmethod
    def _check_role(cls, value):
        return _check_pattern(value, ORG_IAM_ROLE_ARN_PATTERN, "IAM role ARN")


class BackupParameters(_Parameters):
    """Root parameters of the AWS Backup module"""
    enabled: bool = Field(True, description="Change to false to avoid deploying any resources.")

    # Vault
    vault_name: Optional[str] = Field(
        None, description="Name of the backup vault to create. If not given, rules target the `Default` vault.")
    vault_kms_key_arn: Optional[str] = Field(None, description="The server-side encryption key for the vault.")
    vault_force_destroy: bool = Field(
        False, description="Destroy the vault when the stack is deleted. The vault is retained otherwise.")
    vault_tags: Dict[str, str] = Field(default_factory=dict, description="Tags of the vault.")

    # Vault lock
    locked: bool = Field(False, description="Change to true to add a lock configuration to the vault.")
    changeable_for_days: Optional[int] = Field(
        None, ge=MIN_CHANGEABLE_FOR_DAYS, le=MAX_RETENTION_DAYS,
        description="Days before the lock becomes immutable. Omit for governance mode, set for compliance mode.")
    min_retention_days: Optional[int] = Field(
        None, ge=1, le=MAX_RETENTION_DAYS, description="Minimum retention period the vault retains recovery points.")
    max_retention_days: Optional[int] = Field(
        None, ge=1, le=MAX_RETENTION_DAYS, description="Maximum retention period the vault retains recovery points.")

    # Vault access policy
    vault_policy: Optional[Dict[str, Any]] = Field(None, description="Access policy document of the vault.")

    # Single plan shorthand
    plan_name: Optional[str] = Field(None, description="Backup plan name, when `plans` is not used.")
    plan_tags: Dict[str, str] = Field(default_factory=dict, description="Tags of the backup plan.")
    rule_name: Optional[str] = Field(None, description="Name of the single rule.")
    rule_schedule: Optional[str] = Field(None, description="Schedule of the single rule.")
    rule_schedule_expression_timezone: Optional[str] = Field(None, description="Time zone of the single rule.")
    rule_start_window: Optional[int] = Field(None, description="Start window of the single rule, in minutes.")
    rule_completion_window: Optional[int] = Field(
        None, description="Completion window of the single rule, in minutes.")
    rule_enable_continuous_backup: bool = Field(False, description="Continuous backup for the single rule.")
    rule_lifecycle_cold_storage_after: Optional[int] = Field(
        None, description="Days before recovery points of the single rule move to cold storage.")
    rule_lifecycle_delete_after: Optional[int] = Field(
        None, description="Days before recovery points of the single rule are deleted.")
    rule_copy_action_destination_vault_arn: Optional[str] = Field(
        None, description="Destination vault ARN of the single rule's copy action.")
    rule_copy_action_lifecycle: Optional[LifecycleParameters] = Field(
        None, description="Lifecycle of the single rule's copy action.")
    rule_recovery_point_tags: Dict[str, str] = Field(
        default_factory=dict, description="Recovery point tags of the single rule.")
    rules: List[RuleParameters] = Field(default_factory=list, description="Rules of the backup plan.")

    selection_name: Optional[str] = Field(None, description="Name of the single selection.")
    selection_resources: List[str] = Field(default_factory=list, description="Resources of the single selection.")
    selection_not_resources: List[str] = Field(
        default_factory=list, description="Resources excluded from the single selection.")
    selection_conditions: Optional[SelectionConditionsParameters] = Field(
        None, description="Conditions of the single selection.")
    selection_tags: List[SelectionTagParameters] = Field(
        default_factory=list, description="Tags of the single selection.")
    selections: List[SelectionParameters] = Field(
        default_factory=list, description="Selections of the backup plan, as a list or a map keyed by name.")

    # Multiple plans
    plans: Dict[str, PlanParameters] = Field(
        default_factory=dict, description="Backup plans keyed by name. Takes precedence over the single plan.")

    # IAM
    iam_role_arn: Optional[str] = Field(
        None, description="Existing role used by the selections. A role is created when not given.")
    iam_role_name: Optional[str] = Field(None, max_length=64, description="Name of the created role.")

    # Notifications
    notifications: Optional[NotificationParameters] = Field(None, description="Vault event notifications.")
    notifications_disable_sns_policy: bool = Field(
        False, description="Do not manage the SNS topic policy allowing AWS Backup to publish.")

    windows_vss_backup: bool = Field(False, description="Enable Windows VSS backups for EC2 in every plan.")

    # Audit Manager
    audit_framework: AuditFrameworkParameters = Field(
        default_factory=AuditFrameworkParameters, description="Audit Manager framework.")
    reports: List[ReportPlanParameters] = Field(default_factory=list, description="Audit Manager report plans.")

    # Organizations
    enable_org_policy: bool = Field(False, description="Create an AWS Organizations backup policy.")
    org_policy_name: Optional[str] = Field(None, description="Name of the organization backup policy.")
    org_policy_description: Optional[str] = Field(None, description="Description of the organization policy.")
    org_policy_target_ids: List[str] = Field(
        default_factory=list, description="Roots, OUs or accounts the organization policy is attached to.")
    backup_policies: Dict[str, OrganizationPolicyPlanParameters] = Field(
        default_factory=dict, description="Plans of the organization backup policy, keyed by plan name.")

    tags: Dict[str, str] = Field(default_factory=dict, description="Tags applied to every resource.")

    @field_validator("vault_name")
    @classmethod
    def _check_vault_name(cls, value):
        return _check_pattern(value, VAULT_NAME_PATTERN, "vault name")

    @field_validator("vault_kms_key_arn")
    @classmethod
    def _check_kms_key(cls, value):
        return _check_pattern(value, KMS_KEY_ARN_PATTERN, "KMS key ARN")

    @field_validator("plan_name", "rule_name", "selection_name")
    @classmethod
    def _check_names(cls, value):
        return _check_pattern(value, BACKUP_NAME_PATTERN, "name")

    @field_validator("iam_role_arn")
    @classmethod
    def _check_role(cls, value):
        return _check_pattern(value, IAM_ROLE_ARN_PATTERN, "IAM role ARN")

    @field_validator("plans", "backup_policies")
    @classmethod
    def _check_keys(cls, value):
        for key in value:
            _check_pattern(key, BACKUP_NAME_PATTERN, "plan name")
        return value

    @field_validator("org_policy_target_ids")
    @classmethod
    def _check_target_ids(cls, value):
        for target_id in value:
            _check_pattern(target_id, ORG_TARGET_ID_PATTERN, "organization target id")
        return value

    @field_validator("selections", mode="before")
    @classmethod
    def _accept_selection_map(cls, value):
        return _named_list(value)

    @model_validator(mode="after")
    def _check_vault_lock(self):
        lock_values = (self.changeable_for_days, self.min_retention_days, self.max_retention_days)
        if not self.locked:
            if any(value is not None for value in lock_values):
                raise ValueError("changeable_for_days, min_retention_days and max_retention_days require locked")
            return self
        if self.min_retention_days is None:
            raise ValueError("min_retention_days is required when the vault is locked")
        if self.max_retention_days is not None and self.min_retention_days > self.max_retention_days:
            raise ValueError(
                f"min_retention_days ({self.min_retention_days}) must not exceed "
                f"max_retention_days ({self.max_retention_days})")
        return self


def _error_location(error: ValidationError) -> Optional[str]:
    """Dotted location of the first error in a pydantic ValidationError"""
    errors = error.errors()
    if not errors:
        return None
    return ".".join(str(part) for part in errors[0]["loc"]) or None


def load_parameters(path: Union[str, Path]) -> BackupParameters:
    """Load and validate module parameters from a JSON or YAML file

    Parameters
    ----------
    path : Union[str, Path]
        Path to a `.json`, `.yaml` or `.yml` file containing a mapping of parameters.

    Returns
    -------
    : BackupParameters
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix not in (".json", ".yaml", ".yml"):
        raise BackupConfigurationError(f"Unsupported parameter file type {suffix!r}", field=str(path))

    try:
        text = path.read_text()
    except OSError as e:
        raise BackupConfigurationError(f"Unable to read parameter file {path}", original_error=e) from e

    try:
        raw = json.loads(text) if suffix == ".json" else yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise BackupConfigurationError(f"Unable to parse parameter file {path}", original_error=e) from e

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise BackupConfigurationError(f"Parameter file {path} must contain a mapping", value=type(raw).__name__)

    try:
        parameters = BackupParameters.model_validate(raw)
    except ValidationError as e:
        raise BackupConfigurationError(
            f"Invalid parameters in {path}: {e.error_count()} error(s)",
            field=_error_location(e),
            original_error=e,
        ) from e

    logger.info(f"Loaded backup parameters from {path}")
    return parameters
