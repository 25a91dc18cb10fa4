"""One plan with one rule and one selection, stored in a new vault"""
# Installed
from aws_cdk import App, Stack
# Local
from cdk_aws_backup.backup import BackupConstruct
from cdk_aws_backup.parameters import BackupParameters

app = App()
stack = Stack(app, "SimplePlanBackup")

BackupConstruct(
    stack,
    "Backup",
    parameters=BackupParameters(
        vault_name="vault-0",
        plan_name="simple-plan",
        rules=[
            {
                "name": "rule-1",
                "schedule": "cron(0 12 * * ? *)",
                "start_window": 120,
                "completion_window": 360,
                "lifecycle": {"delete_after": 90},
                "recovery_point_tags": {"Environment": "prod"},
            }
        ],
        selections=[
            {
                "name": "selection-1",
                "resources": ["arn:aws:dynamodb:us-east-1:123456789101:table/mydynamodb-table"],
                "selection_tags": [{"type": "STRINGEQUALS", "key": "Environment", "value": "prod"}],
            }
        ],
        tags={"Owner": "backup team", "Environment": "prod"},
    ),
)

app.synth()
