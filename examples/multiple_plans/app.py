"""Several plans sharing one vault, each with its own rules and selections"""
# Installed
from aws_cdk import App, Stack
# Local
from cdk_aws_backup.backup import BackupConstruct
from cdk_aws_backup.parameters import BackupParameters

app = App()
stack = Stack(app, "MultiplePlansBackup")

BackupConstruct(
    stack,
    "Backup",
    parameters=BackupParameters(
        vault_name="vault-3",
        plans={
            "daily": {
                "rules": [
                    {
                        "name": "daily",
                        "schedule": "cron(0 5 * * ? *)",
                        "lifecycle": {"delete_after": 35},
                    }
                ],
                "selections": {
                    "tagged": {"selection_tags": [{"key": "Backup", "value": "daily"}]},
                },
            },
            "monthly": {
                "name": "monthly-archive",
                "rules": [
                    {
                        "name": "monthly",
                        "schedule": "cron(0 5 1 * ? *)",
                        "lifecycle": {"cold_storage_after": 30, "delete_after": 365},
                    }
                ],
                "selections": [
                    {
                        "name": "volumes",
                        "resources": ["arn:aws:ec2:*:*:volume/*"],
                        "selection_tags": [{"key": "Backup", "value": "monthly"}],
                    }
                ],
                "tags": {"Retention": "long"},
            },
        },
        tags={"Owner": "backup team"},
    ),
)

app.synth()
