"""Constant values use throughout the package."""
# Standard
from enum import Enum

DEFAULT_VAULT_NAME = "Default"
BACKUP_SERVICE_PRINCIPAL = "backup.amazonaws.com"

# AWS Backup limits
MAX_RETENTION_DAYS = 36500
MIN_CHANGEABLE_FOR_DAYS = 3
MIN_START_WINDOW_MINUTES = 60
MIN_COMPLETION_WINDOW_MINUTES = 120
# Recovery points must stay in cold storage for at least 90 days
MIN_COLD_STORAGE_DAYS = 90
MAX_CONTINUOUS_BACKUP_RETENTION_DAYS = 35

# AWS Organizations policy document quota, in characters
MAX_ORG_POLICY_SIZE = 10000

BACKUP_SERVICE_MANAGED_POLICIES = (
    "service-role/AWSBackupServiceRolePolicyForBackup",
    "service-role/AWSBackupServiceRolePolicyForRestores",
    "service-role/AWSBackupServiceRolePolicyForS3Backup",
    "service-role/AWSBackupServiceRolePolicyForS3Restore",
)

BACKUP_TAG_ACTIONS = (
    "backup:TagResource",
    "backup:ListTags",
    "backup:UntagResource",
    "tag:GetResources",
)

VAULT_NAME_PATTERN = r"^[a-zA-Z0-9\-_]{2,50}$"
BACKUP_NAME_PATTERN = r"^[a-zA-Z0-9\-_.]{1,50}$"
AUDIT_NAME_PATTERN = r"^[a-zA-Z][_a-zA-Z0-9]{0,255}$"
SCHEDULE_PATTERN = r"^(cron|rate)\(.+\)$"
TIMEZONE_PATTERN = r"^[A-Za-z_]+(/[A-Za-z0-9_+\-]+)*$"
VAULT_ARN_PATTERN = (
    r"^arn:(?P<partition>aws[a-z\-]*):backup:(?P<region>[a-z0-9\-]+):(?P<account>\d{12}):"
    r"backup-vault:(?P<name>[a-zA-Z0-9\-_]{2,50})$"
)
KMS_KEY_ARN_PATTERN = r"^arn:aws[a-z\-]*:kms:[a-z0-9\-]+:\d{12}:key/.+$"
IAM_ROLE_ARN_PATTERN = r"^arn:aws[a-z\-]*:iam::\d{12}:role/.+$"
SNS_TOPIC_ARN_PATTERN = r"^arn:aws[a-z\-]*:sns:[a-z0-9\-]+:\d{12}:[a-zA-Z0-9\-_]{1,256}$"
RESOURCE_ARN_PATTERN = r"^(\*|arn:aws[a-z\-]*:[a-z0-9\-]+:.*)$"
ORG_TARGET_ID_PATTERN = r"^(r-[0-9a-z]{4,32}|\d{12}|ou-[0-9a-z]{4,32}-[a-z0-9]{8,32})$"


class VaultEvent(Enum):
    """Valid AWS Backup vault notification events"""
    BACKUP_JOB_STARTED = "BACKUP_JOB_STARTED"
    BACKUP_JOB_COMPLETED = "BACKUP_JOB_COMPLETED"
    BACKUP_JOB_SUCCESSFUL = "BACKUP_JOB_SUCCESSFUL"
    BACKUP_JOB_FAILED = "BACKUP_JOB_FAILED"
    BACKUP_JOB_EXPIRED = "BACKUP_JOB_EXPIRED"
    RESTORE_JOB_STARTED = "RESTORE_JOB_STARTED"
    RESTORE_JOB_COMPLETED = "RESTORE_JOB_COMPLETED"
    RESTORE_JOB_SUCCESSFUL = "RESTORE_JOB_SUCCESSFUL"
    RESTORE_JOB_FAILED = "RESTORE_JOB_FAILED"
    COPY_JOB_STARTED = "COPY_JOB_STARTED"
    COPY_JOB_SUCCESSFUL = "COPY_JOB_SUCCESSFUL"
    COPY_JOB_FAILED = "COPY_JOB_FAILED"
    RECOVERY_POINT_MODIFIED = "RECOVERY_POINT_MODIFIED"
    BACKUP_PLAN_CREATED = "BACKUP_PLAN_CREATED"
    BACKUP_PLAN_MODIFIED = "BACKUP_PLAN_MODIFIED"
    S3_BACKUP_OBJECT_FAILED = "S3_BACKUP_OBJECT_FAILED"
    S3_RESTORE_OBJECT_FAILED = "S3_RESTORE_OBJECT_FAILED"


class AuditControl(Enum):
    """Controls available to AWS Backup Audit Manager frameworks"""
    BACKUP_RECOVERY_POINT_MINIMUM_RETENTION_CHECK = "BACKUP_RECOVERY_POINT_MINIMUM_RETENTION_CHECK"
    BACKUP_PLAN_MIN_FREQUENCY_AND_MIN_RETENTION_CHECK = "BACKUP_PLAN_MIN_FREQUENCY_AND_MIN_RETENTION_CHECK"
    BACKUP_RECOVERY_POINT_ENCRYPTED = "BACKUP_RECOVERY_POINT_ENCRYPTED"
    BACKUP_RESOURCES_PROTECTED_BY_BACKUP_PLAN = "BACKUP_RESOURCES_PROTECTED_BY_BACKUP_PLAN"
    BACKUP_RECOVERY_POINT_MANUAL_DELETION_DISABLED = "BACKUP_RECOVERY_POINT_MANUAL_DELETION_DISABLED"
    BACKUP_RESOURCES_PROTECTED_BY_BACKUP_VAULT_LOCK = "BACKUP_RESOURCES_PROTECTED_BY_BACKUP_VAULT_LOCK"
    BACKUP_LAST_RECOVERY_POINT_CREATED = "BACKUP_LAST_RECOVERY_POINT_CREATED"
    BACKUP_RESOURCES_PROTECTED_BY_CROSS_REGION = "BACKUP_RESOURCES_PROTECTED_BY_CROSS_REGION"
    BACKUP_RESOURCES_PROTECTED_BY_CROSS_ACCOUNT = "BACKUP_RESOURCES_PROTECTED_BY_CROSS_ACCOUNT"
    RESTORE_TIME_FOR_RESOURCES_MEET_TARGET = "RESTORE_TIME_FOR_RESOURCES_MEET_TARGET"


class ReportTemplate(Enum):
    """Audit Manager report templates"""
    RESOURCE_COMPLIANCE_REPORT = "RESOURCE_COMPLIANCE_REPORT"
    CONTROL_COMPLIANCE_REPORT = "CONTROL_COMPLIANCE_REPORT"
    BACKUP_JOB_REPORT = "BACKUP_JOB_REPORT"
    COPY_JOB_REPORT = "COPY_JOB_REPORT"
    RESTORE_JOB_REPORT = "RESTORE_JOB_REPORT"


# Compliance reports are scoped to frameworks, job reports are not
COMPLIANCE_REPORT_TEMPLATES = (
    ReportTemplate.RESOURCE_COMPLIANCE_REPORT,
    ReportTemplate.CONTROL_COMPLIANCE_REPORT,
)


class ReportFormat(Enum):
    """Audit Manager report file formats"""
    CSV = "CSV"
    JSON = "JSON"


class BackupEnv(Enum):
    """Environment variable names read by the module"""
    AWS_REGION = "AWS_REGION"
    CONSOLE_LOG_LEVEL = "CONSOLE_LOG_LEVEL"
    SNS_TOPIC_ARN = "SNS_TOPIC_ARN"
    BACKUP_CLIENT_MAX_ATTEMPTS = "BACKUP_CLIENT_MAX_ATTEMPTS"
    BACKUP_PARAMETERS_FILE = "BACKUP_PARAMETERS_FILE"
    CDK_DEFAULT_ACCOUNT = "CDK_DEFAULT_ACCOUNT"
    CDK_DEFAULT_REGION = "CDK_DEFAULT_REGION"


# CloudFormation outputs emitted by BackupConstruct, used for documentation
OUTPUTS = {
    "VaultName": "Name of the backup vault created by the module",
    "VaultArn": "ARN of the backup vault created by the module",
    "PlanIds": "Comma separated IDs of the backup plans",
    "PlanArns": "Comma separated ARNs of the backup plans",
    "PlanVersions": "Comma separated version IDs of the backup plans",
    "RoleArn": "ARN of the IAM role used by AWS Backup selections",
    "FrameworkArn": "ARN of the Audit Manager framework",
    "OrganizationPolicyId": "ID of the AWS Organizations backup policy",
}

# CloudFormation resource types the module can create, used for documentation
RESOURCES = (
    ("AWS::Backup::BackupVault", "Backup vault, optionally locked, with access policy and notifications"),
    ("AWS::Backup::BackupPlan", "One per plan"),
    ("AWS::Backup::BackupSelection", "One per plan selection"),
    ("AWS::Backup::Framework", "Audit Manager framework"),
    ("AWS::Backup::ReportPlan", "One per report"),
    ("AWS::IAM::Role", "Service role assumed by AWS Backup, unless `iam_role_arn` is given"),
    ("AWS::IAM::Policy", "Tagging permissions for the service role"),
    ("AWS::SNS::TopicPolicy", "Allows AWS Backup to publish vault notifications"),
    ("AWS::Organizations::Policy", "Organizations backup policy"),
)

REQUIREMENTS = (
    ("python", ">= 3.9"),
    ("aws-cdk-lib", ">= 2.150.0, < 3"),
    ("constructs", ">= 10.0.0, < 11"),
    ("boto3", ">= 1.28"),
    ("pydantic", ">= 2.0"),
)
