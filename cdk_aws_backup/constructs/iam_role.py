"""Service role assumed by AWS Backup when it backs up and restores selected resources"""
# Standard
from typing import Optional
# Installed
from constructs import Construct
from aws_cdk import (
    aws_iam as iam,
)
# Local
from cdk_aws_backup.constructs.constants import (
    BACKUP_SERVICE_MANAGED_POLICIES,
    BACKUP_SERVICE_PRINCIPAL,
    BACKUP_TAG_ACTIONS,
)


class BackupServiceRoleConstruct(Construct):
    """Construct providing the IAM role used by backup selections"""

    def __init__(
            self,
            scope: Construct,
            construct_id: str,
            *,
            iam_role_arn: Optional[str] = None,
            iam_role_name: Optional[str] = None,
    ) -> None:
        """Construct init

        :param scope: Construct
            The scope in which this Construct is instantiated, usually the `self` inside a Stack.
        :param construct_id: str
            ID for this construct instance, e.g. "BackupServiceRole"
        :param iam_role_arn: Optional[str]
            ARN of an existing role. When given, the role is imported and nothing is created.
        :param iam_role_name: Optional[str]
            Name of the created role. Defaults to a CloudFormation generated name.
        """
        super().__init__(scope, construct_id)

        if iam_role_arn:
            # Existing role, managed outside this stack
            self.role = iam.Role.from_role_arn(self, "ImportedRole", iam_role_arn, mutable=False)
            self.created = False
            return

        # Role that AWS Backup assumes to create and restore recovery points
        self.role = iam.Role(
            self,
            "Role",
            role_name=iam_role_name,
            assumed_by=iam.ServicePrincipal(BACKUP_SERVICE_PRINCIPAL),
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name(policy_name)
                for policy_name in BACKUP_SERVICE_MANAGED_POLICIES
            ],
        )
        # Recovery point tags are copied from the source resources
        self.role.add_to_policy(
            iam.PolicyStatement(
                actions=list(BACKUP_TAG_ACTIONS),
                resources=["*"],
            )
        )
        self.created = True

    @property
    def role_arn(self) -> str:
        return self.role.role_arn
