"""CDK resources for an AWS Organizations backup policy"""
# Installed
from constructs import Construct
from aws_cdk import (
    aws_organizations as organizations,
)
# Local
from cdk_aws_backup.plans import NormalizedOrganizationPolicy


class OrganizationBackupPolicyConstruct(Construct):
    """Construct containing a BACKUP_POLICY attached to organization roots, OUs or accounts

    Must be deployed in the organization's management account or a delegated administrator account.
    """

    def __init__(
            self,
            scope: Construct,
            construct_id: str,
            *,
            policy: NormalizedOrganizationPolicy,
    ) -> None:
        super().__init__(scope, construct_id)

        self.policy = organizations.CfnPolicy(
            self,
            "Policy",
            name=policy.name,
            description=policy.description,
            type="BACKUP_POLICY",
            content=policy.content,
            target_ids=policy.target_ids,
        )

    @property
    def policy_id(self) -> str:
        return self.policy.attr_id
