"""Rendering of AWS Organizations backup policy documents

Backup policies use the Organizations management policy syntax, where every leaf value is wrapped in an
inheritance operator (`@@assign`) and numbers are written as strings. See
https://docs.aws.amazon.com/organizations/latest/userguide/orgs_manage_policies_backup_syntax.html
"""
# Standard
import json
import logging
from typing import Dict, List, Optional
# Local
from cdk_aws_backup.constructs.constants import MAX_ORG_POLICY_SIZE
from cdk_aws_backup.errors import BackupConfigurationError
from cdk_aws_backup.parameters import (
    BackupParameters,
    LifecycleParameters,
    OrganizationPolicyPlanParameters,
    SelectionTagParameters,
)

logger = logging.getLogger(__name__)


def _assign(value) -> dict:
    """Wrap a value in the @@assign operator, stringifying integers"""
    if isinstance(value, bool):
        return {"@@assign": "enabled" if value else "disabled"}
    if isinstance(value, int):
        return {"@@assign": str(value)}
    return {"@@assign": value}


def _identifiers(keys: List[str]) -> Dict[str, str]:
    """Map each distinct tag key to a unique lower case identifier

    Tag keys are case sensitive, so keys differing only in case get a numbered suffix.
    """
    identifiers = {}
    taken = set()
    for key in keys:
        if key in identifiers:
            continue
        identifier = base = key.lower()
        suffix = 2
        while identifier in taken:
            identifier = f"{base}_{suffix}"
            suffix += 1
        identifiers[key] = identifier
        taken.add(identifier)
    return identifiers


def _tags(tags: Dict[str, str]) -> dict:
    """Tags are keyed by a lower case identifier and carry the real key and value"""
    identifiers = _identifiers(list(tags))
    return {
        identifiers[key]: {"tag_key": _assign(key), "tag_value": _assign(value)}
        for key, value in tags.items()
    }


def _lifecycle(lifecycle: Optional[LifecycleParameters]) -> dict:
    rendered = {}
    if lifecycle is None:
        return rendered
    if lifecycle.delete_after is not None:
        rendered["delete_after_days"] = _assign(lifecycle.delete_after)
    if lifecycle.cold_storage_after is not None:
        rendered["move_to_cold_storage_after_days"] = _assign(lifecycle.cold_storage_after)
    if lifecycle.opt_in_to_archive_for_supported_resources:
        rendered["opt_in_to_archive_for_supported_resources"] = _assign("true")
    return rendered


def _selections(selection_tags: List[SelectionTagParameters], iam_role_arn: str) -> dict:
    """Group tag selections by exact key. Several values for one key select any of them."""
    identifiers = _identifiers([tag.key for tag in selection_tags])
    selections = {}
    for tag in selection_tags:
        selection = selections.setdefault(identifiers[tag.key], {
            "iam_role_arn": _assign(iam_role_arn),
            "tag_key": _assign(tag.key),
            "tag_value": _assign([]),
        })
        if tag.value not in selection["tag_value"]["@@assign"]:
            selection["tag_value"]["@@assign"].append(tag.value)
    return {"tags": selections}


def _render_plan(name: str, plan: OrganizationPolicyPlanParameters, windows_vss: bool, tags: Dict[str, str]) -> dict:
    rule = {
        "schedule_expression": _assign(plan.schedule),
        "target_backup_vault_name": _assign(plan.target_vault_name),
    }
    if plan.start_window is not None:
        rule["start_backup_window_minutes"] = _assign(plan.start_window)
    if plan.completion_window is not None:
        rule["complete_backup_window_minutes"] = _assign(plan.completion_window)
    lifecycle = _lifecycle(plan.lifecycle)
    if lifecycle:
        rule["lifecycle"] = lifecycle
    if plan.recovery_point_tags:
        rule["recovery_point_tags"] = _tags(plan.recovery_point_tags)
    if plan.copy_actions:
        rule["copy_actions"] = {
            copy_action.destination_vault_arn: {
                "target_backup_vault_arn": _assign(copy_action.destination_vault_arn),
                **({"lifecycle": _lifecycle(copy_action.lifecycle)} if copy_action.lifecycle else {}),
            }
            for copy_action in plan.copy_actions
        }

    rendered = {
        "regions": _assign(plan.regions),
        "rules": {name: rule},
        "selections": _selections(plan.selection_tags, plan.iam_role_arn),
    }
    if windows_vss:
        rendered["advanced_backup_settings"] = {"ec2": {"windows_vss": _assign(True)}}
    if tags:
        rendered["backup_plan_tags"] = _tags(tags)
    return rendered


def render_backup_policy(parameters: BackupParameters) -> dict:
    """Render the `backup_policies` parameters as an Organizations backup policy document

    Parameters
    ----------
    parameters : BackupParameters
        Module parameters. `backup_policies`, `windows_vss_backup` and `tags` are used.

    Returns
    -------
    : dict
        Policy document, ready to be serialized as the content of an AWS::Organizations::Policy
    """
    document = {
        "plans": {
            name: _render_plan(name, plan, parameters.windows_vss_backup, parameters.tags)
            for name, plan in parameters.backup_policies.items()
        }
    }

    size = len(json.dumps(document, separators=(",", ":")))
    if size > MAX_ORG_POLICY_SIZE:
        raise BackupConfigurationError(
            f"Organization backup policy is {size} characters, the limit is {MAX_ORG_POLICY_SIZE}",
            field="backup_policies", value=size)
    logger.debug(f"Rendered organization backup policy with {len(document['plans'])} plan(s), {size} characters")
    return document
