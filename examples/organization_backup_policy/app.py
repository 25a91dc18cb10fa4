"""Organizations backup policy pushing a plan to every account of an organizational unit

Deploy from the management account or a delegated administrator account.
"""
# Installed
from aws_cdk import App, Stack
# Local
from cdk_aws_backup.backup import BackupConstruct
from cdk_aws_backup.parameters import BackupParameters

app = App()
stack = Stack(app, "OrganizationBackupPolicy")

BackupConstruct(
    stack,
    "Backup",
    parameters=BackupParameters(
        enable_org_policy=True,
        org_policy_name="backup-policy",
        org_policy_description="Daily backups of every tagged resource",
        org_policy_target_ids=["ou-ab12-cdefgh34"],
        backup_policies={
            "daily": {
                "regions": ["us-east-1", "us-west-2"],
                "schedule": "cron(0 5 * * ? *)",
                "start_window": 60,
                "completion_window": 240,
                "lifecycle": {"delete_after": 35},
                "recovery_point_tags": {"BackupPolicy": "daily"},
                "selection_tags": [
                    {"key": "Backup", "value": "daily"},
                    {"key": "Backup", "value": "all"},
                ],
            }
        },
    ),
)

app.synth()
