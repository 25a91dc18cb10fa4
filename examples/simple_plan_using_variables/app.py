"""One plan described with the rule_* and selection_* shorthand parameters"""
# Installed
from aws_cdk import App, Stack
# Local
from cdk_aws_backup.backup import BackupConstruct
from cdk_aws_backup.parameters import BackupParameters

app = App()
stack = Stack(app, "SimplePlanUsingVariablesBackup")

BackupConstruct(
    stack,
    "Backup",
    parameters=BackupParameters(
        vault_name="vault-1",
        plan_name="simple-plan-variables",
        rule_name="rule-1",
        rule_schedule="cron(0 12 * * ? *)",
        rule_start_window=120,
        rule_completion_window=360,
        rule_lifecycle_cold_storage_after=30,
        rule_lifecycle_delete_after=120,
        rule_recovery_point_tags={"Environment": "prod"},
        selection_name="selection-1",
        selection_resources=["arn:aws:dynamodb:us-east-1:123456789101:table/mydynamodb-table"],
        selection_tags=[{"key": "Environment", "value": "prod"}],
        tags={"Owner": "backup team"},
    ),
)

app.synth()
