"""Read-only comparison of the desired backup resources against the deployed AWS Backup state

Only the values set in the module parameters are compared. AWS fills in defaults for everything else
(e.g. a 480 minute start window) and those are not reported as drift. Nothing here changes AWS state.
"""
# Standard
import json
import logging
from typing import Any, Dict, List, Optional
# Installed
import boto3
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel
# Local
from cdk_aws_backup.errors import DriftDetectionError
from cdk_aws_backup.helpers import get_backup_client, send_sns_message
from cdk_aws_backup.plans import NormalizedBackup, NormalizedPlan, NormalizedRule, NormalizedSelection, NormalizedVault

logger = logging.getLogger(__name__)

MISSING = "MISSING"
CHANGED = "CHANGED"
UNEXPECTED = "UNEXPECTED"


class DriftItem(BaseModel):
    """One drifted resource. `differences` maps a field to its desired and actual values."""
    resource_type: str
    name: str
    status: str
    differences: Dict[str, Dict[str, Any]] = {}


class DriftReport(BaseModel):
    items: List[DriftItem] = []

    @property
    def has_drift(self) -> bool:
        return bool(self.items)

    def to_dict(self) -> dict:
        return {"has_drift": self.has_drift, "items": [item.model_dump() for item in self.items]}


def _differences(desired: Dict[str, Any], actual: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Fields whose desired value is set and differs from the actual value"""
    return {
        field: {"desired": value, "actual": actual.get(field)}
        for field, value in desired.items()
        if value is not None and actual.get(field) != value
    }


def _paginate(client, operation: str, key: str, resource: str, **kwargs) -> List[dict]:
    try:
        paginator = client.get_paginator(operation)
        return [item for page in paginator.paginate(**kwargs) for item in page[key]]
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Failed to call {operation} for {resource}: {e}")
        raise DriftDetectionError(f"Failed to call {operation}", resource=resource, original_error=e) from e


def _call(client, operation: str, resource: str, **kwargs) -> dict:
    try:
        return getattr(client, operation)(**kwargs)
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Failed to call {operation} for {resource}: {e}")
        raise DriftDetectionError(f"Failed to call {operation}", resource=resource, original_error=e) from e


def _compare_vault(client, vault: NormalizedVault) -> Optional[DriftItem]:
    vaults = {v["BackupVaultName"]: v for v in _paginate(client, "list_backup_vaults", "BackupVaultList", vault.name)}
    actual = vaults.get(vault.name)
    if actual is None:
        return DriftItem(resource_type="vault", name=vault.name, status=MISSING)

    desired = {"EncryptionKeyArn": vault.kms_key_arn}
    if vault.locked:
        desired["MinRetentionDays"] = vault.min_retention_days
        desired["MaxRetentionDays"] = vault.max_retention_days
    differences = _differences(desired, actual)
    if differences:
        return DriftItem(resource_type="vault", name=vault.name, status=CHANGED, differences=differences)
    return None


def _desired_rule(rule: NormalizedRule) -> Dict[str, Any]:
    desired = {
        "TargetBackupVaultName": rule.target_vault_name,
        "ScheduleExpression": rule.schedule,
        "ScheduleExpressionTimezone": rule.schedule_expression_timezone,
        "StartWindowMinutes": rule.start_window,
        "CompletionWindowMinutes": rule.completion_window,
        "EnableContinuousBackup": rule.enable_continuous_backup or None,
        "CopyDestinations": sorted(c.destination_vault_arn for c in rule.copy_actions) or None,
        "RecoveryPointTags": rule.recovery_point_tags or None,
    }
    if rule.lifecycle:
        desired["DeleteAfterDays"] = rule.lifecycle.delete_after
        desired["MoveToColdStorageAfterDays"] = rule.lifecycle.cold_storage_after
    return desired


def _actual_rule(rule: dict) -> Dict[str, Any]:
    """Flatten an API rule so it can be compared field by field with _desired_rule"""
    lifecycle = rule.get("Lifecycle") or {}
    return {
        **rule,
        "CopyDestinations": sorted(c["DestinationBackupVaultArn"] for c in rule.get("CopyActions", [])) or None,
        "RecoveryPointTags": rule.get("RecoveryPointTags") or None,
        "DeleteAfterDays": lifecycle.get("DeleteAfterDays"),
        "MoveToColdStorageAfterDays": lifecycle.get("MoveToColdStorageAfterDays"),
    }


def _compare_rules(plan: NormalizedPlan, actual_rules: List[dict]) -> List[DriftItem]:
    items = []
    actual_by_name = {rule["RuleName"]: rule for rule in actual_rules}
    for rule in plan.rules:
        name = f"{plan.name}/{rule.name}"
        actual = actual_by_name.pop(rule.name, None)
        if actual is None:
            items.append(DriftItem(resource_type="rule", name=name, status=MISSING))
            continue
        differences = _differences(_desired_rule(rule), _actual_rule(actual))
        if differences:
            items.append(DriftItem(resource_type="rule", name=name, status=CHANGED, differences=differences))
    for rule_name in actual_by_name:
        items.append(DriftItem(resource_type="rule", name=f"{plan.name}/{rule_name}", status=UNEXPECTED))
    return items


def _desired_selection(selection: NormalizedSelection) -> Dict[str, Any]:
    return {
        "Resources": sorted(selection.resources) or None,
        "NotResources": sorted(selection.not_resources) or None,
        "ListOfTags": sorted((tag.key, tag.value) for tag in selection.selection_tags) or None,
    }


def _actual_selection(selection: dict) -> Dict[str, Any]:
    return {
        "Resources": sorted(selection.get("Resources") or []) or None,
        "NotResources": sorted(selection.get("NotResources") or []) or None,
        "ListOfTags": sorted(
            (tag["ConditionKey"], tag["ConditionValue"]) for tag in selection.get("ListOfTags") or []) or None,
    }


def _compare_selections(client, plan: NormalizedPlan, plan_id: str) -> List[DriftItem]:
    items = []
    summaries = _paginate(client, "list_backup_selections", "BackupSelectionsList", plan.name, BackupPlanId=plan_id)
    actual_by_name = {summary["SelectionName"]: summary for summary in summaries}
    for selection in plan.selections:
        name = f"{plan.name}/{selection.name}"
        summary = actual_by_name.pop(selection.name, None)
        if summary is None:
            items.append(DriftItem(resource_type="selection", name=name, status=MISSING))
            continue
        response = _call(client, "get_backup_selection", name, BackupPlanId=plan_id,
                         SelectionId=summary["SelectionId"])
        differences = _differences(_desired_selection(selection), _actual_selection(response["BackupSelection"]))
        if differences:
            items.append(DriftItem(resource_type="selection", name=name, status=CHANGED, differences=differences))
    for selection_name in actual_by_name:
        items.append(DriftItem(resource_type="selection", name=f"{plan.name}/{selection_name}", status=UNEXPECTED))
    return items


def detect_drift(normalized: NormalizedBackup, client=None, include_selections: bool = True) -> DriftReport:
    """Compare a normalized resource graph against the deployed AWS Backup resources

    Parameters
    ----------
    normalized : NormalizedBackup
        Desired state, from `cdk_aws_backup.plans.normalize`.
    client : Optional
        boto3 AWS Backup client. Default None, which uses `get_backup_client()`.
    include_selections : bool
        Also compare the selections of each plan. Default True.

    Returns
    -------
    : DriftReport
    """
    client = client or get_backup_client()
    report = DriftReport()
    if not normalized.enabled:
        logger.info("Backup module is disabled, skipping drift detection")
        return report

    if normalized.vault is not None:
        item = _compare_vault(client, normalized.vault)
        if item:
            report.items.append(item)

    actual_plans = {
        plan["BackupPlanName"]: plan
        for plan in _paginate(client, "list_backup_plans", "BackupPlansList", "backup plans")
    }
    for plan in normalized.plans:
        summary = actual_plans.get(plan.name)
        if summary is None:
            report.items.append(DriftItem(resource_type="plan", name=plan.name, status=MISSING))
            continue
        plan_id = summary["BackupPlanId"]
        response = _call(client, "get_backup_plan", plan.name, BackupPlanId=plan_id)
        report.items.extend(_compare_rules(plan, response["BackupPlan"].get("Rules", [])))
        if include_selections:
            report.items.extend(_compare_selections(client, plan, plan_id))

    logger.info({
        "msg": "Drift detection complete",
        "drifted_resources": len(report.items),
        "plans_checked": len(normalized.plans),
    })
    return report


def notify_drift(report: DriftReport) -> bool:
    """Send the drift report to SNS_TOPIC_ARN. Does nothing when there is no drift.

    Returns
    -------
    : bool
        True if a notification was published.
    """
    if not report.has_drift:
        return False

    # Get AWS account ID (for visibility in multi-account setups)
    sts = boto3.client('sts')
    account_id = sts.get_caller_identity()['Account']

    # For custom chatbot message structure see https://docs.aws.amazon.com/chatbot/latest/adminguide/custom-notifs.html
    lines = [f"- {item.status} {item.resource_type} `{item.name}`" for item in report.items]
    message = {
        "textType": "client-markdown",
        "title": "AWS Backup Drift",
        "description": (
            "*Deployed AWS Backup resources differ from their parameters*\n"
            f"- Account ID: `{account_id}`\n"
            + "\n".join(lines)
            + "\n*Details:*\n"
            + json.dumps(report.to_dict()["items"], indent=2, default=str)
        ),
    }
    return send_sns_message("BackupDrift", "AWS Backup drift detected", message)
