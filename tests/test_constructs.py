"""Tests for the CDK constructs, asserting on the synthesized CloudFormation templates"""
# Installed
import pytest
# Local
from cdk_aws_backup.parameters import BackupParameters, load_parameters

cdk = pytest.importorskip("aws_cdk")

from aws_cdk.assertions import Match, Template  # noqa: E402
from cdk_aws_backup.app import BackupStack  # noqa: E402
from cdk_aws_backup.backup import BackupConstruct  # noqa: E402

ACCOUNT = "123456789101"
REGION = "us-east-1"
ROLE_ARN = f"arn:aws:iam::{ACCOUNT}:role/existing-backup-role"


@pytest.fixture
def synth():
    """Returns a function synthesizing a stack holding one BackupConstruct"""

    def _synth(parameters: BackupParameters) -> Template:
        app = cdk.App()
        stack = cdk.Stack(app, "TestStack", env=cdk.Environment(account=ACCOUNT, region=REGION))
        BackupConstruct(stack, "Backup", parameters=parameters)
        return Template.from_stack(stack)

    return _synth


def test_complete_vault(synth, complete_plan_file):
    template = synth(load_parameters(complete_plan_file))

    template.resource_count_is("AWS::Backup::BackupVault", 1)
    template.has_resource_properties("AWS::Backup::BackupVault", {
        "BackupVaultName": "vault-2",
        "EncryptionKeyArn": "arn:aws:kms:us-east-1:123456789101:key/7a5ed6a0-5b66-4b28-8c5a-2c4c8d2a6f1e",
        "LockConfiguration": {"MinRetentionDays": 7, "MaxRetentionDays": 360, "ChangeableForDays": 3},
        "Notifications": {
            "BackupVaultEvents": ["BACKUP_JOB_STARTED", "BACKUP_JOB_FAILED"],
            "SNSTopicArn": "arn:aws:sns:us-east-1:123456789101:backup-vault-events",
        },
        "AccessPolicy": Match.object_like({"Version": "2012-10-17"}),
        "BackupVaultTags": Match.object_like({"Vault": "primary"}),
    })
    # vault_force_destroy
    template.has_resource("AWS::Backup::BackupVault", {"DeletionPolicy": "Delete"})


def test_vault_topic_policy(synth, complete_plan_file):
    template = synth(load_parameters(complete_plan_file))
    template.has_resource_properties("AWS::SNS::TopicPolicy", {
        "Topics": ["arn:aws:sns:us-east-1:123456789101:backup-vault-events"],
        "PolicyDocument": {
            "Statement": [Match.object_like({
                "Action": "SNS:Publish",
                "Effect": "Allow",
                "Principal": {"Service": "backup.amazonaws.com"},
            })],
            "Version": "2012-10-17",
        },
    })


def test_vault_retained_by_default(synth, make_parameters):
    template = synth(make_parameters(selections=[]))
    template.has_resource("AWS::Backup::BackupVault", {"DeletionPolicy": "Retain"})
    template.resource_count_is("AWS::SNS::TopicPolicy", 0)


def test_unmanaged_topic_policy(synth, make_parameters):
    template = synth(make_parameters(
        selections=[],
        notifications={"sns_topic_arn": "arn:aws:sns:us-east-1:123456789101:events",
                       "backup_vault_events": ["BACKUP_JOB_FAILED"]},
        notifications_disable_sns_policy=True,
    ))
    template.resource_count_is("AWS::SNS::TopicPolicy", 0)


def test_complete_plan_rules(synth, complete_plan_file):
    template = synth(load_parameters(complete_plan_file))

    template.resource_count_is("AWS::Backup::BackupPlan", 1)
    template.has_resource_properties("AWS::Backup::BackupPlan", {
        "BackupPlan": {
            "BackupPlanName": "complete-plan",
            "AdvancedBackupSettings": [{"BackupOptions": {"WindowsVSS": "enabled"}, "ResourceType": "EC2"}],
            "BackupPlanRule": [
                {
                    "RuleName": "rule-1",
                    # The module vault is referenced, not named
                    "TargetBackupVault": {"Fn::GetAtt": [Match.string_like_regexp("BackupVault"),
                                                         "BackupVaultName"]},
                    "ScheduleExpression": "cron(0 12 * * ? *)",
                    "ScheduleExpressionTimezone": "America/Denver",
                    "StartWindowMinutes": 120,
                    "CompletionWindowMinutes": 360,
                    "Lifecycle": {"DeleteAfterDays": 180, "MoveToColdStorageAfterDays": 30},
                    "CopyActions": [{
                        "DestinationBackupVaultArn": "arn:aws:backup:us-west-2:123456789101:backup-vault:Default",
                        "Lifecycle": {"DeleteAfterDays": 90},
                    }],
                    "RecoveryPointTags": {"Environment": "prod"},
                },
                Match.object_like({
                    "RuleName": "rule-2",
                    "EnableContinuousBackup": True,
                    "Lifecycle": {"DeleteAfterDays": 30},
                }),
            ],
        },
        "BackupPlanTags": Match.object_like({"Plan": "complete"}),
    })


def test_complete_plan_selection(synth, complete_plan_file):
    template = synth(load_parameters(complete_plan_file))

    template.resource_count_is("AWS::Backup::BackupSelection", 1)
    template.has_resource_properties("AWS::Backup::BackupSelection", {
        "BackupPlanId": {"Fn::GetAtt": [Match.any_value(), "BackupPlanId"]},
        "BackupSelection": {
            "SelectionName": "prod-databases",
            "IamRoleArn": {"Fn::GetAtt": [Match.string_like_regexp("BackupServiceRole"), "Arn"]},
            "Resources": ["arn:aws:dynamodb:us-east-1:123456789101:table/mydynamodb-table1"],
            "NotResources": ["arn:aws:dynamodb:us-east-1:123456789101:table/mydynamodb-table3"],
            "ListOfTags": [
                {"ConditionType": "STRINGEQUALS", "ConditionKey": "Environment", "ConditionValue": "prod"},
            ],
            "Conditions": {
                "StringEquals": [{"ConditionKey": "aws:ResourceTag/Component", "ConditionValue": "rds"}],
                "StringNotLike": [{"ConditionKey": "aws:ResourceTag/Stage", "ConditionValue": "test*"}],
            },
        },
    })


def test_service_role(synth, make_parameters):
    template = synth(make_parameters())

    template.resource_count_is("AWS::IAM::Role", 1)
    template.has_resource_properties("AWS::IAM::Role", {
        "AssumeRolePolicyDocument": {
            "Statement": [Match.object_like({"Principal": {"Service": "backup.amazonaws.com"}})],
        },
        "ManagedPolicyArns": Match.array_with([
            {"Fn::Join": ["", ["arn:", {"Ref": "AWS::Partition"},
                               ":iam::aws:policy/service-role/AWSBackupServiceRolePolicyForBackup"]]},
        ]),
    })
    template.has_resource_properties("AWS::IAM::Policy", {
        "PolicyDocument": {
            "Statement": [Match.object_like({
                "Action": ["backup:TagResource", "backup:ListTags", "backup:UntagResource", "tag:GetResources"],
                "Resource": "*",
            })],
        },
    })


def test_imported_role(synth, make_parameters):
    template = synth(make_parameters(iam_role_arn=ROLE_ARN))

    template.resource_count_is("AWS::IAM::Role", 0)
    template.has_resource_properties("AWS::Backup::BackupSelection", {
        "BackupSelection": Match.object_like({"IamRoleArn": ROLE_ARN}),
    })
    template.has_output("*", {"Value": ROLE_ARN})


def test_no_role_without_selections(synth, make_parameters):
    template = synth(make_parameters(selections=[]))
    template.resource_count_is("AWS::IAM::Role", 0)
    template.resource_count_is("AWS::Backup::BackupSelection", 0)


def test_plan_without_vault(synth, make_parameters):
    """Rules without a module vault target the Default vault"""
    template = synth(make_parameters(vault_name=None, selections=[]))

    template.resource_count_is("AWS::Backup::BackupVault", 0)
    template.has_resource_properties("AWS::Backup::BackupPlan", {
        "BackupPlan": Match.object_like({
            "BackupPlanRule": [Match.object_like({"RuleName": "daily", "TargetBackupVault": "Default"})],
        }),
    })


def test_multiple_plans(synth, multiple_plans_file):
    template = synth(load_parameters(multiple_plans_file))

    template.resource_count_is("AWS::Backup::BackupPlan", 2)
    template.resource_count_is("AWS::Backup::BackupSelection", 1)
    template.has_resource_properties("AWS::Backup::BackupPlan", {
        "BackupPlan": Match.object_like({
            "BackupPlanName": "monthly-archive",
            "BackupPlanRule": [Match.object_like({"RuleName": "monthly", "TargetBackupVault": "archive-vault"})],
        }),
        "BackupPlanTags": Match.object_like({"Retention": "long"}),
    })
    template.has_resource_properties("AWS::Backup::BackupPlan", {
        "BackupPlan": Match.object_like({"BackupPlanName": "daily"}),
    })


def test_audit_framework(synth, audit_framework_file):
    template = synth(load_parameters(audit_framework_file))

    template.resource_count_is("AWS::Backup::Framework", 1)
    template.has_resource_properties("AWS::Backup::Framework", {
        "FrameworkName": "backup_framework",
        "FrameworkDescription": "Backup compliance controls",
        "FrameworkControls": [
            {
                "ControlName": "BACKUP_RECOVERY_POINT_MINIMUM_RETENTION_CHECK",
                "ControlInputParameters": [{"ParameterName": "requiredRetentionDays", "ParameterValue": "35"}],
            },
            {
                "ControlName": "BACKUP_RESOURCES_PROTECTED_BY_BACKUP_PLAN",
                "ControlScope": {
                    "ComplianceResourceTypes": ["EBS", "RDS"],
                    "Tags": [{"Key": "Environment", "Value": "prod"}],
                },
            },
        ],
    })


def test_report_plans(synth, audit_framework_file):
    template = synth(load_parameters(audit_framework_file))

    template.resource_count_is("AWS::Backup::ReportPlan", 2)
    # Compliance reports cover the created framework by default
    template.has_resource_properties("AWS::Backup::ReportPlan", {
        "ReportPlanName": "control_compliance",
        "ReportDeliveryChannel": {
            "S3BucketName": "my-backup-reports",
            "S3KeyPrefix": "compliance",
            "Formats": ["CSV", "JSON"],
        },
        "ReportSetting": {
            "ReportTemplate": "CONTROL_COMPLIANCE_REPORT",
            "FrameworkArns": [{"Fn::GetAtt": [Match.string_like_regexp("Framework"), "FrameworkArn"]}],
        },
    })
    template.has_resource_properties("AWS::Backup::ReportPlan", {
        "ReportPlanName": "backup_jobs",
        "ReportDeliveryChannel": {"S3BucketName": "my-backup-reports", "Formats": ["CSV"],
                                  "S3KeyPrefix": Match.absent()},
        "ReportSetting": {"ReportTemplate": "BACKUP_JOB_REPORT", "FrameworkArns": Match.absent()},
    })


def test_report_plan_scope(synth):
    """Report settings are written with their CloudFormation property names"""
    template = synth(BackupParameters(reports=[{
        "name": "org_jobs",
        "s3_bucket_name": "my-backup-reports",
        "report_template": "BACKUP_JOB_REPORT",
        "accounts": [ACCOUNT],
        "regions": [REGION],
        "organization_units": ["ou-ab12-cdefgh34"],
    }]))

    reports = template.find_resources("AWS::Backup::ReportPlan")
    assert len(reports) == 1
    properties = next(iter(reports.values()))["Properties"]
    assert properties["ReportDeliveryChannel"] == {"S3BucketName": "my-backup-reports", "Formats": ["CSV"]}
    assert properties["ReportSetting"] == {
        "ReportTemplate": "BACKUP_JOB_REPORT",
        "Accounts": [ACCOUNT],
        "Regions": [REGION],
        "OrganizationUnits": ["ou-ab12-cdefgh34"],
    }


def test_organization_policy(synth, organization_policy_file):
    template = synth(load_parameters(organization_policy_file))

    template.resource_count_is("AWS::Organizations::Policy", 1)
    template.has_resource_properties("AWS::Organizations::Policy", {
        "Name": "backup-policy",
        "Description": "Daily backups of every tagged resource",
        "Type": "BACKUP_POLICY",
        "TargetIds": ["ou-ab12-cdefgh34"],
        "Content": {"plans": Match.object_like({"daily": Match.any_value()})},
    })
    template.resource_count_is("AWS::Backup::BackupPlan", 0)


def test_outputs(synth, make_parameters):
    template = synth(make_parameters())
    outputs = template.find_outputs("*")
    descriptions = {output["Description"] for output in outputs.values()}
    assert descriptions == {
        "Name of the backup vault",
        "ARN of the backup vault",
        "IDs of the backup plans",
        "ARNs of the backup plans",
        "Version IDs of the backup plans",
        "ARN of the IAM role used by the backup selections",
    }


def test_module_tags(synth, make_parameters):
    template = synth(make_parameters(tags={"Owner": "backup team"}))
    template.has_resource_properties("AWS::Backup::BackupVault", {
        "BackupVaultTags": Match.object_like({"Owner": "backup team"}),
    })


def test_disabled_module(synth, make_parameters):
    template = synth(make_parameters(enabled=False))
    for resource_type in ("AWS::Backup::BackupVault", "AWS::Backup::BackupPlan", "AWS::Backup::BackupSelection",
                          "AWS::IAM::Role"):
        template.resource_count_is(resource_type, 0)
    assert template.find_outputs("*") == {}


def test_backup_stack():
    app = cdk.App()
    stack = BackupStack(app, "BackupStack", parameters=BackupParameters(vault_name="stack-vault"),
                        env=cdk.Environment(account=ACCOUNT, region=REGION))
    template = Template.from_stack(stack)
    template.has_resource_properties("AWS::Backup::BackupVault", {"BackupVaultName": "stack-vault"})
    template.resource_count_is("AWS::Backup::BackupPlan", 0)


def test_main_reads_parameters_file(cleanup_loggers, monkeypatch, simple_plan_file):
    from cdk_aws_backup.app import main
    monkeypatch.setenv("BACKUP_PARAMETERS_FILE", str(simple_plan_file))
    monkeypatch.setenv("CDK_DEFAULT_ACCOUNT", ACCOUNT)
    monkeypatch.setenv("CDK_DEFAULT_REGION", REGION)

    app = main(cdk.App())
    stack = app.node.find_child("BackupStack")
    Template.from_stack(stack).has_resource_properties("AWS::Backup::BackupVault", {"BackupVaultName": "vault-0"})


def test_main_context_overrides_environment(cleanup_loggers, monkeypatch, simple_plan_file, multiple_plans_file):
    from cdk_aws_backup.app import main
    monkeypatch.setenv("BACKUP_PARAMETERS_FILE", str(simple_plan_file))

    app = main(cdk.App(context={"parameters_file": str(multiple_plans_file)}))
    Template.from_stack(app.node.find_child("BackupStack")).resource_count_is("AWS::Backup::BackupPlan", 2)


def test_main_without_parameters_file(cleanup_loggers, monkeypatch):
    from cdk_aws_backup.app import main
    from cdk_aws_backup.errors import BackupConfigurationError
    monkeypatch.delenv("BACKUP_PARAMETERS_FILE", raising=False)

    with pytest.raises(BackupConfigurationError) as excinfo:
        main(cdk.App())
    assert excinfo.value.field == "parameters_file"
