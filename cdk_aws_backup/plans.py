"""Normalization of module parameters into a backup resource graph

The module accepts three styles of input, in order of precedence:

1. `plans`: a map of plans, each with its own rules and selections
2. `rules` and `selections`: a single plan named `plan_name`
3. `rule_*` and `selection_*` shorthand: a single plan with a single rule and a single selection

`normalize` resolves these into one list of `NormalizedPlan` objects, fills in defaults and enforces the rules that
span several parameters. Everything that fails raises a BackupConfigurationError naming the offending field.
"""
# Standard
import logging
import re
from typing import Any, Dict, List, Optional
# Installed
from pydantic import BaseModel, ValidationError
# Local
from cdk_aws_backup.constructs.constants import (
    COMPLIANCE_REPORT_TEMPLATES,
    DEFAULT_VAULT_NAME,
    MAX_CONTINUOUS_BACKUP_RETENTION_DAYS,
    VAULT_ARN_PATTERN,
)
from cdk_aws_backup.errors import BackupConfigurationError
from cdk_aws_backup.organization_policy import render_backup_policy
from cdk_aws_backup.parameters import (
    AuditFrameworkParameters,
    BackupParameters,
    LifecycleParameters,
    NotificationParameters,
    ReportPlanParameters,
    RuleParameters,
    SelectionConditionsParameters,
    SelectionParameters,
    SelectionTagParameters,
)

logger = logging.getLogger(__name__)

# Parameters behind each field of the single rule built from the rule_* shorthand
SHORTHAND_RULE_FIELDS = {
    "lifecycle.cold_storage_after": "rule_lifecycle_cold_storage_after",
    "lifecycle.delete_after": "rule_lifecycle_delete_after",
    "copy_actions[0]": "rule_copy_action_destination_vault_arn",
}


class CopyTarget(BaseModel):
    """Destination of a copy action, with the vault ARN broken into its parts"""
    destination_vault_arn: str
    partition: str
    region: str
    account: str
    vault_name: str
    lifecycle: Optional[LifecycleParameters] = None
    # None when the source account or region is unknown (environment agnostic stacks)
    cross_region: Optional[bool] = None
    cross_account: Optional[bool] = None


class NormalizedRule(BaseModel):
    name: str
    target_vault_name: str
    targets_module_vault: bool
    schedule: Optional[str] = None
    schedule_expression_timezone: Optional[str] = None
    start_window: Optional[int] = None
    completion_window: Optional[int] = None
    enable_continuous_backup: bool = False
    lifecycle: Optional[LifecycleParameters] = None
    copy_actions: List[CopyTarget] = []
    recovery_point_tags: Dict[str, str] = {}


class NormalizedSelection(BaseModel):
    name: str
    resources: List[str] = []
    not_resources: List[str] = []
    conditions: Optional[SelectionConditionsParameters] = None
    selection_tags: List[SelectionTagParameters] = []


class NormalizedPlan(BaseModel):
    key: str
    name: str
    rules: List[NormalizedRule]
    selections: List[NormalizedSelection] = []
    tags: Dict[str, str] = {}
    windows_vss: bool = False


class NormalizedVault(BaseModel):
    name: str
    kms_key_arn: Optional[str] = None
    force_destroy: bool = False
    tags: Dict[str, str] = {}
    locked: bool = False
    changeable_for_days: Optional[int] = None
    min_retention_days: Optional[int] = None
    max_retention_days: Optional[int] = None
    policy: Optional[Dict[str, Any]] = None
    notifications: Optional[NotificationParameters] = None
    manage_sns_policy: bool = True


class NormalizedOrganizationPolicy(BaseModel):
    name: str
    description: Optional[str] = None
    target_ids: List[str]
    content: Dict[str, Any]


class NormalizedBackup(BaseModel):
    """The complete, validated resource graph of the module"""
    enabled: bool = True
    account: Optional[str] = None
    region: Optional[str] = None
    vault: Optional[NormalizedVault] = None
    plans: List[NormalizedPlan] = []
    iam_role_arn: Optional[str] = None
    iam_role_name: Optional[str] = None
    audit_framework: Optional[AuditFrameworkParameters] = None
    reports: List[ReportPlanParameters] = []
    organization_policy: Optional[NormalizedOrganizationPolicy] = None
    tags: Dict[str, str] = {}

    @property
    def needs_service_role(self) -> bool:
        """True when some plan has selections and no existing role was given"""
        return self.iam_role_arn is None and any(plan.selections for plan in self.plans)


def parse_vault_arn(arn: str) -> Dict[str, str]:
    """Split a backup vault ARN into partition, region, account and name"""
    match = re.match(VAULT_ARN_PATTERN, arn)
    if not match:
        raise BackupConfigurationError("Invalid backup vault ARN", value=arn)
    return match.groupdict()


def _shorthand_rule(parameters: BackupParameters) -> RuleParameters:
    """Build the single rule described by the `rule_*` parameters"""
    rule = {
        "name": parameters.rule_name,
        "schedule": parameters.rule_schedule,
        "schedule_expression_timezone": parameters.rule_schedule_expression_timezone,
        "start_window": parameters.rule_start_window,
        "completion_window": parameters.rule_completion_window,
        "enable_continuous_backup": parameters.rule_enable_continuous_backup,
        "recovery_point_tags": parameters.rule_recovery_point_tags,
    }
    if parameters.rule_lifecycle_cold_storage_after is not None or parameters.rule_lifecycle_delete_after is not None:
        rule["lifecycle"] = {
            "cold_storage_after": parameters.rule_lifecycle_cold_storage_after,
            "delete_after": parameters.rule_lifecycle_delete_after,
        }
    if parameters.rule_copy_action_destination_vault_arn:
        rule["copy_actions"] = [{
            "destination_vault_arn": parameters.rule_copy_action_destination_vault_arn,
            "lifecycle": parameters.rule_copy_action_lifecycle,
        }]
    try:
        return RuleParameters.model_validate(rule)
    except ValidationError as e:
        raise BackupConfigurationError(
            f"Invalid rule_* parameters: {e.errors()[0]['msg']}", field="rule_*", original_error=e) from e


def _shorthand_selection(parameters: BackupParameters) -> SelectionParameters:
    """Build the single selection described by the `selection_*` parameters"""
    try:
        return SelectionParameters(
            name=parameters.selection_name,
            resources=parameters.selection_resources,
            not_resources=parameters.selection_not_resources,
            conditions=parameters.selection_conditions,
            selection_tags=parameters.selection_tags,
        )
    except ValidationError as e:
        raise BackupConfigurationError(
            f"Invalid selection_* parameters: {e.errors()[0]['msg']}", field="selection_*", original_error=e) from e


def _plan_sources(parameters: BackupParameters) -> List[Dict[str, Any]]:
    """Resolve the input style into a list of raw plan descriptions"""
    if parameters.plans:
        if parameters.plan_name or parameters.rules or parameters.rule_name:
            logger.warning("plans is set, ignoring plan_name, rules and rule_* parameters")
        return [
            {
                "key": key,
                "path": f"plans.{key}",
                "name": plan.name or key,
                "rules": plan.rules,
                "selections": plan.selections,
                "tags": plan.tags,
            }
            for key, plan in parameters.plans.items()
        ]

    rules = list(parameters.rules)
    shorthand_rule = not rules and bool(parameters.rule_name)
    if shorthand_rule:
        rules = [_shorthand_rule(parameters)]

    selections = list(parameters.selections)
    if not selections and parameters.selection_name:
        selections = [_shorthand_selection(parameters)]

    if not rules:
        if selections:
            raise BackupConfigurationError("Selections require at least one rule", field="selections")
        logger.info("No backup rules given, no backup plan will be created")
        return []

    if not parameters.plan_name:
        raise BackupConfigurationError("plan_name is required when rules are given without plans", field="plan_name")

    return [{
        "key": parameters.plan_name,
        "path": "",
        "name": parameters.plan_name,
        "rules": rules,
        "selections": selections,
        "tags": parameters.plan_tags,
        "shorthand_rule": shorthand_rule,
    }]


def _field(path: str, name: str) -> str:
    return f"{path}.{name}" if path else name


def _rule_field(rule_path: Optional[str], name: str) -> str:
    """Parameter path of a rule field. A None rule path stands for the rule_* shorthand."""
    if rule_path is None:
        return SHORTHAND_RULE_FIELDS.get(name, "rule_*")
    return _field(rule_path, name)


def _check_unique(names: List[str], field: str):
    seen = set()
    for name in names:
        if name in seen:
            raise BackupConfigurationError(f"Duplicate name {name!r}", field=field, value=name)
        seen.add(name)


def _normalize_copy_action(copy_action, rule: NormalizedRule, account: Optional[str], region: Optional[str],
                           field: str) -> CopyTarget:
    """Parse a copy action destination and reject copies into the rule's own target vault"""
    parts = parse_vault_arn(copy_action.destination_vault_arn)
    cross_region = parts["region"] != region if region else None
    cross_account = parts["account"] != account if account else None

    if cross_region is False and cross_account is False and parts["name"] == rule.target_vault_name:
        raise BackupConfigurationError(
            f"Rule {rule.name!r} copies recovery points into its own target vault",
            field=field, value=copy_action.destination_vault_arn)

    if cross_region or cross_account:
        logger.debug(f"Rule {rule.name} copies to {parts['name']} in {parts['account']}/{parts['region']} "
                     f"(cross region: {cross_region}, cross account: {cross_account})")

    return CopyTarget(
        destination_vault_arn=copy_action.destination_vault_arn,
        lifecycle=copy_action.lifecycle,
        partition=parts["partition"],
        region=parts["region"],
        account=parts["account"],
        vault_name=parts["name"],
        cross_region=cross_region,
        cross_account=cross_account,
    )


def _check_continuous_backup(rule: RuleParameters, field: Optional[str]):
    """Continuous backups are kept at most 35 days and never tiered to cold storage"""
    lifecycle = rule.lifecycle
    if lifecycle and lifecycle.cold_storage_after is not None:
        raise BackupConfigurationError(
            f"Continuous backup rule {rule.name!r} cannot move recovery points to cold storage",
            field=_rule_field(field, "lifecycle.cold_storage_after"), value=lifecycle.cold_storage_after)
    delete_after = lifecycle.delete_after if lifecycle else None
    if delete_after is None or delete_after > MAX_CONTINUOUS_BACKUP_RETENTION_DAYS:
        raise BackupConfigurationError(
            f"Continuous backup rule {rule.name!r} must set lifecycle.delete_after to at most "
            f"{MAX_CONTINUOUS_BACKUP_RETENTION_DAYS} days",
            field=_rule_field(field, "lifecycle.delete_after"), value=delete_after)


def _check_vault_lock(rule: NormalizedRule, vault: NormalizedVault, field: Optional[str]):
    """Retention of a rule targeting a locked vault must fall within the lock bounds"""
    delete_after = rule.lifecycle.delete_after if rule.lifecycle else None
    if delete_after is not None and delete_after < vault.min_retention_days:
        raise BackupConfigurationError(
            f"Rule {rule.name!r} deletes recovery points after {delete_after} days but vault {vault.name!r} is "
            f"locked with min_retention_days {vault.min_retention_days}",
            field=_rule_field(field, "lifecycle.delete_after"), value=delete_after)
    if vault.max_retention_days is not None and (delete_after is None or delete_after > vault.max_retention_days):
        raise BackupConfigurationError(
            f"Rule {rule.name!r} must delete recovery points within max_retention_days "
            f"{vault.max_retention_days} of locked vault {vault.name!r}",
            field=_rule_field(field, "lifecycle.delete_after"), value=delete_after)


def _normalize_rule(rule: RuleParameters, vault: Optional[NormalizedVault], account: Optional[str],
                    region: Optional[str], field: Optional[str]) -> NormalizedRule:
    if rule.enable_continuous_backup:
        _check_continuous_backup(rule, field)

    module_vault_name = vault.name if vault else DEFAULT_VAULT_NAME
    target_vault_name = rule.target_vault_name or module_vault_name
    normalized = NormalizedRule(
        name=rule.name,
        target_vault_name=target_vault_name,
        targets_module_vault=vault is not None and target_vault_name == vault.name,
        schedule=rule.schedule,
        schedule_expression_timezone=rule.schedule_expression_timezone,
        start_window=rule.start_window,
        completion_window=rule.completion_window,
        enable_continuous_backup=rule.enable_continuous_backup,
        lifecycle=rule.lifecycle,
        recovery_point_tags=rule.recovery_point_tags,
    )

    if normalized.targets_module_vault and vault.locked:
        _check_vault_lock(normalized, vault, field)

    normalized.copy_actions = [
        _normalize_copy_action(copy_action, normalized, account, region, _rule_field(field, f"copy_actions[{i}]"))
        for i, copy_action in enumerate(rule.copy_actions)
    ]
    return normalized


def _normalize_selection(selection: SelectionParameters) -> NormalizedSelection:
    conditions = selection.conditions
    if conditions is not None and conditions.is_empty():
        conditions = None
    return NormalizedSelection(
        name=selection.name,
        resources=selection.resources,
        not_resources=selection.not_resources,
        conditions=conditions,
        selection_tags=selection.selection_tags,
    )


def _normalize_vault(parameters: BackupParameters) -> Optional[NormalizedVault]:
    if parameters.vault_name is None:
        for name in ("vault_kms_key_arn", "vault_policy", "notifications"):
            if getattr(parameters, name) is not None:
                raise BackupConfigurationError(f"{name} requires vault_name", field=name)
        if parameters.locked:
            raise BackupConfigurationError("A vault lock requires vault_name", field="locked")
        return None

    return NormalizedVault(
        name=parameters.vault_name,
        kms_key_arn=parameters.vault_kms_key_arn,
        force_destroy=parameters.vault_force_destroy,
        tags=parameters.vault_tags,
        locked=parameters.locked,
        changeable_for_days=parameters.changeable_for_days,
        min_retention_days=parameters.min_retention_days,
        max_retention_days=parameters.max_retention_days,
        policy=parameters.vault_policy,
        notifications=parameters.notifications,
        manage_sns_policy=not parameters.notifications_disable_sns_policy,
    )


def _normalize_organization_policy(parameters: BackupParameters) -> Optional[NormalizedOrganizationPolicy]:
    if not parameters.enable_org_policy:
        if parameters.backup_policies:
            logger.warning("backup_policies is set but enable_org_policy is false, no organization policy created")
        return None
    if not parameters.org_policy_name:
        raise BackupConfigurationError("org_policy_name is required when enable_org_policy is true",
                                       field="org_policy_name")
    if not parameters.org_policy_target_ids:
        raise BackupConfigurationError("At least one target id is required when enable_org_policy is true",
                                       field="org_policy_target_ids")
    if not parameters.backup_policies:
        raise BackupConfigurationError("At least one backup policy is required when enable_org_policy is true",
                                       field="backup_policies")
    return NormalizedOrganizationPolicy(
        name=parameters.org_policy_name,
        description=parameters.org_policy_description,
        target_ids=parameters.org_policy_target_ids,
        content=render_backup_policy(parameters),
    )


def _check_reports(parameters: BackupParameters):
    for i, report in enumerate(parameters.reports):
        if (report.report_template in COMPLIANCE_REPORT_TEMPLATES
                and not report.framework_arns and not parameters.audit_framework.create):
            raise BackupConfigurationError(
                f"Report {report.name!r} uses {report.report_template.value} and needs framework_arns or a "
                f"framework created by the module",
                field=f"reports[{i}].framework_arns")
    _check_unique([report.name for report in parameters.reports], "reports")


def normalize(parameters: BackupParameters, account: Optional[str] = None,
              region: Optional[str] = None) -> NormalizedBackup:
    """Translate module parameters into a validated resource graph

    Parameters
    ----------
    parameters : BackupParameters
        Module parameters.
    account : Optional[str]
        Account the resources are deployed to. Used to classify cross-account copy actions. Default None (unknown).
    region : Optional[str]
        Region the resources are deployed to. Used to classify cross-region copy actions. Default None (unknown).

    Returns
    -------
    : NormalizedBackup
    """
    if not parameters.enabled:
        logger.info("Backup module is disabled, nothing to normalize")
        return NormalizedBackup(enabled=False, account=account, region=region)

    vault = _normalize_vault(parameters)

    plans = []
    for source in _plan_sources(parameters):
        path = source["path"]
        _check_unique([rule.name for rule in source["rules"]], _field(path, "rules"))
        _check_unique([selection.name for selection in source["selections"]], _field(path, "selections"))

        rules = [
            _normalize_rule(rule, vault, account, region,
                            None if source.get("shorthand_rule") else _field(path, f"rules[{i}]"))
            for i, rule in enumerate(source["rules"])
        ]
        selections = [_normalize_selection(selection) for selection in source["selections"]]
        plans.append(NormalizedPlan(
            key=source["key"],
            name=source["name"],
            rules=rules,
            selections=selections,
            tags=source["tags"],
            windows_vss=parameters.windows_vss_backup,
        ))
        logger.debug(f"Normalized plan {source['name']} with {len(rules)} rule(s) and {len(selections)} selection(s)")

    _check_unique([plan.name for plan in plans], "plans")
    _check_reports(parameters)

    normalized = NormalizedBackup(
        account=account,
        region=region,
        vault=vault,
        plans=plans,
        iam_role_arn=parameters.iam_role_arn,
        iam_role_name=parameters.iam_role_name,
        audit_framework=parameters.audit_framework if parameters.audit_framework.create else None,
        reports=parameters.reports,
        organization_policy=_normalize_organization_policy(parameters),
        tags=parameters.tags,
    )
    logger.info(f"Normalized backup module: vault={vault.name if vault else None}, {len(plans)} plan(s)")
    return normalized


def describe(normalized: NormalizedBackup) -> dict:
    """JSON serializable summary of a normalized resource graph"""
    summary = normalized.model_dump(mode="json", exclude_none=True)
    summary["needs_service_role"] = normalized.needs_service_role
    summary["copy_destinations"] = sorted({
        copy_action.destination_vault_arn
        for plan in normalized.plans
        for rule in plan.rules
        for copy_action in rule.copy_actions
    })
    return summary
