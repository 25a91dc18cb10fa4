"""CDK resources for the complete AWS Backup module"""
# Standard
import logging
from typing import Optional
# Installed
from constructs import Construct
from aws_cdk import (
    CfnOutput,
    Fn,
    Stack,
    Tags,
    Token,
)
# Local
from cdk_aws_backup.constructs.audit_framework import AuditFrameworkConstruct
from cdk_aws_backup.constructs.iam_role import BackupServiceRoleConstruct
from cdk_aws_backup.constructs.organization_policy import OrganizationBackupPolicyConstruct
from cdk_aws_backup.constructs.plan import BackupPlanConstruct
from cdk_aws_backup.constructs.vault import BackupVaultConstruct
from cdk_aws_backup.parameters import BackupParameters
from cdk_aws_backup.plans import NormalizedBackup, normalize

logger = logging.getLogger(__name__)


def _resolved(value: str) -> Optional[str]:
    """Concrete value of a stack attribute, None for environment agnostic stacks"""
    return None if Token.is_unresolved(value) else value


class BackupConstruct(Construct):
    """Construct containing every AWS Backup resource described by one set of module parameters"""

    def __init__(
            self,
            scope: Construct,
            construct_id: str,
            *,
            parameters: BackupParameters,
    ) -> None:
        """Creates the vault, service role, plans, selections, audit framework, report plans and organization
        policy described by the parameters. Nothing is created when `parameters.enabled` is false.

        Parameters
        ----------
        scope : Construct
            The scope in which this Construct is instantiated, usually the `self` inside a Stack.
        construct_id : str
            ID for this construct instance, e.g. "Backup"
        parameters : BackupParameters
            Module parameters. They are normalized against the account and region of the enclosing stack.
        """
        super().__init__(scope, construct_id)

        stack = Stack.of(self)
        self.normalized: NormalizedBackup = normalize(
            parameters,
            account=_resolved(stack.account),
            region=_resolved(stack.region),
        )

        self.vault: Optional[BackupVaultConstruct] = None
        self.service_role: Optional[BackupServiceRoleConstruct] = None
        self.plans: list = []
        self.audit: Optional[AuditFrameworkConstruct] = None
        self.organization_policy: Optional[OrganizationBackupPolicyConstruct] = None

        if not self.normalized.enabled:
            logger.info(f"Backup module {construct_id} is disabled, no resources created")
            return

        if self.normalized.vault:
            self.vault = BackupVaultConstruct(self, "BackupVault", vault=self.normalized.vault)

        if self.normalized.iam_role_arn or self.normalized.needs_service_role:
            self.service_role = BackupServiceRoleConstruct(
                self,
                "BackupServiceRole",
                iam_role_arn=self.normalized.iam_role_arn,
                iam_role_name=self.normalized.iam_role_name,
            )

        for plan in self.normalized.plans:
            self.plans.append(
                BackupPlanConstruct(
                    self,
                    f"Plan-{plan.key}",
                    plan=plan,
                    iam_role_arn=self.service_role.role_arn if self.service_role else None,
                    module_vault_name=self.vault.vault_name if self.vault else None,
                )
            )

        if self.normalized.audit_framework or self.normalized.reports:
            self.audit = AuditFrameworkConstruct(
                self,
                "AuditFramework",
                framework=self.normalized.audit_framework,
                reports=self.normalized.reports,
            )

        if self.normalized.organization_policy:
            self.organization_policy = OrganizationBackupPolicyConstruct(
                self,
                "OrganizationBackupPolicy",
                policy=self.normalized.organization_policy,
            )

        for key, value in self.normalized.tags.items():
            Tags.of(self).add(key, value)

        self._add_outputs()

    def _add_outputs(self) -> None:
        if self.vault:
            CfnOutput(self, "VaultName", value=self.vault.vault_name,
                      description="Name of the backup vault")
            CfnOutput(self, "VaultArn", value=self.vault.vault_arn,
                      description="ARN of the backup vault")
        if self.plans:
            CfnOutput(self, "PlanIds", value=Fn.join(",", [plan.plan_id for plan in self.plans]),
                      description="IDs of the backup plans")
            CfnOutput(self, "PlanArns", value=Fn.join(",", [plan.plan_arn for plan in self.plans]),
                      description="ARNs of the backup plans")
            CfnOutput(self, "PlanVersions", value=Fn.join(",", [plan.version_id for plan in self.plans]),
                      description="Version IDs of the backup plans")
        if self.service_role:
            CfnOutput(self, "RoleArn", value=self.service_role.role_arn,
                      description="ARN of the IAM role used by the backup selections")
        if self.audit and self.audit.framework_arn:
            CfnOutput(self, "FrameworkArn", value=self.audit.framework_arn,
                      description="ARN of the Audit Manager framework")
        if self.organization_policy:
            CfnOutput(self, "OrganizationPolicyId", value=self.organization_policy.policy_id,
                      description="ID of the organization backup policy")
