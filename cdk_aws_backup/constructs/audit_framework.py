"""CDK resources for AWS Backup Audit Manager"""
# Standard
from typing import List, Optional
# Installed
from constructs import Construct
from aws_cdk import (
    aws_backup as backup,
)
# Local
from cdk_aws_backup.constructs.constants import COMPLIANCE_REPORT_TEMPLATES
from cdk_aws_backup.parameters import AuditControlParameters, AuditFrameworkParameters, ReportPlanParameters


def _control_scope(control: AuditControlParameters) -> Optional[dict]:
    scope = {}
    if control.compliance_resource_types:
        scope["ComplianceResourceTypes"] = control.compliance_resource_types
    if control.compliance_resource_ids:
        scope["ComplianceResourceIds"] = control.compliance_resource_ids
    if control.tags:
        scope["Tags"] = [{"Key": key, "Value": value} for key, value in control.tags.items()]
    return scope or None


def _without_empty(properties: dict) -> dict:
    return {key: value for key, value in properties.items() if value is not None and value != []}


class AuditFrameworkConstruct(Construct):
    """Construct containing an Audit Manager framework and the report plans delivered to S3"""

    def __init__(
            self,
            scope: Construct,
            construct_id: str,
            *,
            framework: Optional[AuditFrameworkParameters] = None,
            reports: Optional[List[ReportPlanParameters]] = None,
    ) -> None:
        """Construct init

        :param scope: Construct
            The scope in which this Construct is instantiated, usually the `self` inside a Stack.
        :param construct_id: str
            ID for this construct instance, e.g. "AuditFramework"
        :param framework: Optional[AuditFrameworkParameters]
            Framework to create. Default None creates no framework.
        :param reports: Optional[List[ReportPlanParameters]]
            Report plans. Compliance reports without framework_arns cover the created framework.
        """
        super().__init__(scope, construct_id)

        self.framework = None
        if framework is not None:
            # Framework evaluating the backup controls against the account's resources
            self.framework = backup.CfnFramework(
                self,
                "Framework",
                framework_name=framework.framework_name,
                framework_description=framework.description,
                framework_controls=[
                    backup.CfnFramework.FrameworkControlProperty(
                        control_name=control.name.value,
                        control_input_parameters=[
                            backup.CfnFramework.ControlInputParameterProperty(
                                parameter_name=name,
                                parameter_value=value,
                            )
                            for name, value in control.input_parameters.items()
                        ] or None,
                        control_scope=_control_scope(control),
                    )
                    for control in framework.controls
                ],
            )

        self.report_plans = [self._report_plan(report) for report in reports or []]

    def _report_plan(self, report: ReportPlanParameters) -> backup.CfnReportPlan:
        framework_arns = report.framework_arns
        if report.report_template in COMPLIANCE_REPORT_TEMPLATES and not framework_arns:
            if self.framework is None:
                raise ValueError(f"Report plan {report.name} needs framework_arns or a framework")
            framework_arns = [self.framework.attr_framework_arn]

        # Both properties are untyped JSON in CloudFormation, so their keys are written out as they are deployed
        delivery_channel = _without_empty({
            "S3BucketName": report.s3_bucket_name,
            "S3KeyPrefix": report.s3_key_prefix,
            "Formats": [report_format.value for report_format in report.formats],
        })
        report_setting = _without_empty({
            "ReportTemplate": report.report_template.value,
            "FrameworkArns": framework_arns,
            "Accounts": report.accounts,
            "Regions": report.regions,
            "OrganizationUnits": report.organization_units,
        })

        # Report plan delivering its reports to an existing S3 bucket
        return backup.CfnReportPlan(
            self,
            f"ReportPlan-{report.name}",
            report_plan_name=report.name,
            report_plan_description=report.description,
            report_delivery_channel=delivery_channel,
            report_setting=report_setting,
        )

    @property
    def framework_arn(self) -> Optional[str]:
        return self.framework.attr_framework_arn if self.framework else None
