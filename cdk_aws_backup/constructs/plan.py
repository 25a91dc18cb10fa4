"""CDK resources for one backup plan and its selections"""
# Standard
from typing import Dict, List, Optional
# Installed
from constructs import Construct
from aws_cdk import (
    aws_backup as backup,
)
# Local
from cdk_aws_backup.parameters import LifecycleParameters, SelectionConditionsParameters
from cdk_aws_backup.plans import NormalizedPlan, NormalizedRule, NormalizedSelection


def _lifecycle(lifecycle: Optional[LifecycleParameters]) -> Optional[backup.CfnBackupPlan.LifecycleResourceTypeProperty]:
    if lifecycle is None:
        return None
    return backup.CfnBackupPlan.LifecycleResourceTypeProperty(
        delete_after_days=lifecycle.delete_after,
        move_to_cold_storage_after_days=lifecycle.cold_storage_after,
        opt_in_to_archive_for_supported_resources=lifecycle.opt_in_to_archive_for_supported_resources or None,
    )


def _conditions(conditions: Optional[SelectionConditionsParameters]) -> Optional[Dict[str, List[dict]]]:
    """CloudFormation form of the selection conditions, e.g. {"StringEquals": [{"ConditionKey": ...}]}"""
    if conditions is None:
        return None
    rendered = {}
    for operator, values in (("StringEquals", conditions.string_equals),
                             ("StringLike", conditions.string_like),
                             ("StringNotEquals", conditions.string_not_equals),
                             ("StringNotLike", conditions.string_not_like)):
        if values:
            rendered[operator] = [{"ConditionKey": key, "ConditionValue": value} for key, value in values.items()]
    return rendered


class BackupPlanConstruct(Construct):
    """Construct containing a backup plan, its rules and the selections bound to it"""

    def __init__(
            self,
            scope: Construct,
            construct_id: str,
            *,
            plan: NormalizedPlan,
            iam_role_arn: Optional[str] = None,
            module_vault_name: Optional[str] = None,
    ) -> None:
        """Construct init

        :param scope: Construct
            The scope in which this Construct is instantiated, usually the `self` inside a Stack.
        :param construct_id: str
            ID for this construct instance, e.g. "Plan-daily"
        :param plan: NormalizedPlan
            Validated plan, from `cdk_aws_backup.plans.normalize`.
        :param iam_role_arn: Optional[str]
            Role assumed by AWS Backup for the selections. Required when the plan has selections.
        :param module_vault_name: Optional[str]
            Name attribute of the vault created alongside the plan. Rules targeting that vault reference it so the
            vault is created before the plan.
        """
        super().__init__(scope, construct_id)

        if plan.selections and not iam_role_arn:
            raise ValueError(f"Plan {plan.name} has selections but no IAM role was given")

        advanced_backup_settings = None
        if plan.windows_vss:
            advanced_backup_settings = [
                backup.CfnBackupPlan.AdvancedBackupSettingResourceTypeProperty(
                    backup_options={"WindowsVSS": "enabled"},
                    resource_type="EC2",
                )
            ]

        # Backup plan with one entry per rule
        self.backup_plan = backup.CfnBackupPlan(
            self,
            "Plan",
            backup_plan=backup.CfnBackupPlan.BackupPlanResourceTypeProperty(
                backup_plan_name=plan.name,
                backup_plan_rule=[self._rule(rule, module_vault_name) for rule in plan.rules],
                advanced_backup_settings=advanced_backup_settings,
            ),
            backup_plan_tags=plan.tags or None,
        )

        # Selections apply every rule of the plan to their resources
        self.selections = [
            backup.CfnBackupSelection(
                self,
                f"Selection-{selection.name}",
                backup_plan_id=self.backup_plan.attr_backup_plan_id,
                backup_selection=self._selection(selection, iam_role_arn),
            )
            for selection in plan.selections
        ]

    @staticmethod
    def _rule(rule: NormalizedRule,
              module_vault_name: Optional[str]) -> backup.CfnBackupPlan.BackupRuleResourceTypeProperty:
        target_backup_vault = rule.target_vault_name
        if rule.targets_module_vault and module_vault_name:
            target_backup_vault = module_vault_name

        copy_actions = [
            backup.CfnBackupPlan.CopyActionResourceTypeProperty(
                destination_backup_vault_arn=copy_action.destination_vault_arn,
                lifecycle=_lifecycle(copy_action.lifecycle),
            )
            for copy_action in rule.copy_actions
        ]

        return backup.CfnBackupPlan.BackupRuleResourceTypeProperty(
            rule_name=rule.name,
            target_backup_vault=target_backup_vault,
            schedule_expression=rule.schedule,
            schedule_expression_timezone=rule.schedule_expression_timezone,
            start_window_minutes=rule.start_window,
            completion_window_minutes=rule.completion_window,
            enable_continuous_backup=rule.enable_continuous_backup or None,
            lifecycle=_lifecycle(rule.lifecycle),
            copy_actions=copy_actions or None,
            recovery_point_tags=rule.recovery_point_tags or None,
        )

    @staticmethod
    def _selection(selection: NormalizedSelection,
                   iam_role_arn: str) -> backup.CfnBackupSelection.BackupSelectionResourceTypeProperty:
        list_of_tags = [
            backup.CfnBackupSelection.ConditionResourceTypeProperty(
                condition_key=tag.key,
                condition_value=tag.value,
                condition_type=tag.type,
            )
            for tag in selection.selection_tags
        ]
        return backup.CfnBackupSelection.BackupSelectionResourceTypeProperty(
            iam_role_arn=iam_role_arn,
            selection_name=selection.name,
            resources=selection.resources or None,
            not_resources=selection.not_resources or None,
            list_of_tags=list_of_tags or None,
            conditions=_conditions(selection.conditions),
        )

    @property
    def plan_id(self) -> str:
        return self.backup_plan.attr_backup_plan_id

    @property
    def plan_arn(self) -> str:
        return self.backup_plan.attr_backup_plan_arn

    @property
    def version_id(self) -> str:
        return self.backup_plan.attr_version_id
