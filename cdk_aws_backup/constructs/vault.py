"""CDK resources for the AWS Backup vault"""
# Installed
from constructs import Construct
from aws_cdk import (
    RemovalPolicy,
    aws_backup as backup,
    aws_iam as iam,
    aws_sns as sns,
)
# Local
from cdk_aws_backup.constructs.constants import BACKUP_SERVICE_PRINCIPAL
from cdk_aws_backup.plans import NormalizedVault


class BackupVaultConstruct(Construct):
    """Construct containing a backup vault with its lock, access policy and notifications"""

    def __init__(
            self,
            scope: Construct,
            construct_id: str,
            *,
            vault: NormalizedVault,
    ) -> None:
        """Construct init

        :param scope: Construct
            The scope in which this Construct is instantiated, usually the `self` inside a Stack.
        :param construct_id: str
            ID for this construct instance, e.g. "BackupVault"
        :param vault: NormalizedVault
            Validated vault settings, from `cdk_aws_backup.plans.normalize`.
        """
        super().__init__(scope, construct_id)

        lock_configuration = None
        if vault.locked:
            # Compliance mode when changeable_for_days is set, governance mode otherwise
            lock_configuration = backup.CfnBackupVault.LockConfigurationTypeProperty(
                min_retention_days=vault.min_retention_days,
                max_retention_days=vault.max_retention_days,
                changeable_for_days=vault.changeable_for_days,
            )

        notifications = None
        if vault.notifications:
            notifications = backup.CfnBackupVault.NotificationObjectTypeProperty(
                backup_vault_events=[event.value for event in vault.notifications.backup_vault_events],
                sns_topic_arn=vault.notifications.sns_topic_arn,
            )

        # AWS Backup vault storing the recovery points of every plan targeting it
        self.backup_vault = backup.CfnBackupVault(
            self,
            "Vault",
            backup_vault_name=vault.name,
            encryption_key_arn=vault.kms_key_arn,
            backup_vault_tags=vault.tags or None,
            lock_configuration=lock_configuration,
            access_policy=vault.policy,
            notifications=notifications,
        )
        # Vaults are retained by default. A retained vault with recovery points needs manual cleanup.
        self.backup_vault.apply_removal_policy(
            RemovalPolicy.DESTROY if vault.force_destroy else RemovalPolicy.RETAIN
        )

        self.topic_policy = None
        if vault.notifications and vault.manage_sns_policy:
            # Replaces the topic policy, so it can be disabled for topics whose policy is managed elsewhere
            self.topic_policy = sns.CfnTopicPolicy(
                self,
                "NotificationTopicPolicy",
                topics=[vault.notifications.sns_topic_arn],
                policy_document=iam.PolicyDocument(
                    statements=[
                        iam.PolicyStatement(
                            sid="AllowBackupPublish",
                            actions=["SNS:Publish"],
                            principals=[iam.ServicePrincipal(BACKUP_SERVICE_PRINCIPAL)],
                            resources=[vault.notifications.sns_topic_arn],
                        )
                    ]
                ),
            )

    @property
    def vault_name(self) -> str:
        return self.backup_vault.attr_backup_vault_name

    @property
    def vault_arn(self) -> str:
        return self.backup_vault.attr_backup_vault_arn
