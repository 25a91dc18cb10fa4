"""Locked and encrypted vault with notifications, an access policy and a plan copying to another region"""
# Installed
from aws_cdk import App, Environment, Stack
# Local
from cdk_aws_backup.backup import BackupConstruct
from cdk_aws_backup.parameters import BackupParameters

app = App()
stack = Stack(app, "CompletePlanBackup", env=Environment(account="123456789101", region="us-east-1"))

BackupConstruct(
    stack,
    "Backup",
    parameters=BackupParameters(
        vault_name="vault-2",
        vault_kms_key_arn="arn:aws:kms:us-east-1:123456789101:key/7a5ed6a0-5b66-4b28-8c5a-2c4c8d2a6f1e",
        locked=True,
        changeable_for_days=3,
        min_retention_days=7,
        max_retention_days=360,
        vault_policy={
            "Version": "2012-10-17",
            "Statement": [
                {
                    "Sid": "DenyRecoveryPointDeletion",
                    "Effect": "Deny",
                    "Principal": "*",
                    "Action": ["backup:DeleteRecoveryPoint"],
                    "Resource": "*",
                }
            ],
        },
        notifications={
            "sns_topic_arn": "arn:aws:sns:us-east-1:123456789101:backup-vault-events",
            "backup_vault_events": ["BACKUP_JOB_STARTED", "BACKUP_JOB_FAILED", "RESTORE_JOB_COMPLETED"],
        },
        plan_name="complete-plan",
        rules=[
            {
                "name": "rule-1",
                "schedule": "cron(0 12 * * ? *)",
                "schedule_expression_timezone": "America/Denver",
                "start_window": 120,
                "completion_window": 360,
                "lifecycle": {"cold_storage_after": 30, "delete_after": 180},
                "copy_actions": [
                    {
                        "destination_vault_arn": "arn:aws:backup:us-west-2:123456789101:backup-vault:Default",
                        "lifecycle": {"delete_after": 90},
                    }
                ],
                "recovery_point_tags": {"Environment": "prod"},
            },
            {
                "name": "rule-2",
                "schedule": "cron(0 7 * * ? *)",
                "enable_continuous_backup": True,
                "lifecycle": {"delete_after": 30},
            },
        ],
        selections={
            "prod-databases": {
                "resources": [
                    "arn:aws:dynamodb:us-east-1:123456789101:table/mydynamodb-table1",
                    "arn:aws:dynamodb:us-east-1:123456789101:table/mydynamodb-table2",
                ],
                "not_resources": ["arn:aws:dynamodb:us-east-1:123456789101:table/mydynamodb-table3"],
                "conditions": {"string_equals": {"aws:ResourceTag/Component": "rds"}},
                "selection_tags": [{"key": "Environment", "value": "prod"}],
            }
        },
        windows_vss_backup=True,
        tags={"Owner": "backup team", "Environment": "prod"},
    ),
)

app.synth()
