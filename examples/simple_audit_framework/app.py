"""Audit Manager framework with a compliance report delivered to S3"""
# Installed
from aws_cdk import App, Stack
# Local
from cdk_aws_backup.backup import BackupConstruct
from cdk_aws_backup.parameters import BackupParameters

app = App()
stack = Stack(app, "AuditFrameworkBackup")

BackupConstruct(
    stack,
    "Backup",
    parameters=BackupParameters(
        audit_framework={
            "create": True,
            "framework_name": "backup_framework",
            "description": "Backup compliance controls",
            "controls": [
                {
                    "name": "BACKUP_RECOVERY_POINT_MINIMUM_RETENTION_CHECK",
                    "input_parameters": {"requiredRetentionDays": 35},
                },
                {
                    "name": "BACKUP_PLAN_MIN_FREQUENCY_AND_MIN_RETENTION_CHECK",
                    "input_parameters": {
                        "requiredFrequencyUnit": "hours",
                        "requiredRetentionDays": 35,
                        "requiredFrequencyValue": 1,
                    },
                },
                {"name": "BACKUP_RECOVERY_POINT_ENCRYPTED"},
                {
                    "name": "BACKUP_RESOURCES_PROTECTED_BY_BACKUP_PLAN",
                    "compliance_resource_types": ["EBS", "RDS"],
                },
            ],
        },
        reports=[
            {
                "name": "control_compliance",
                "s3_bucket_name": "my-backup-reports",
                "s3_key_prefix": "compliance",
                "formats": ["CSV", "JSON"],
                "report_template": "CONTROL_COMPLIANCE_REPORT",
            },
            {
                "name": "backup_jobs",
                "s3_bucket_name": "my-backup-reports",
                "report_template": "BACKUP_JOB_REPORT",
            },
        ],
    ),
)

app.synth()
