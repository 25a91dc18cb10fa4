"""Command line tool working on module parameter files without deploying anything

    cdk-aws-backup validate backup.yaml
    cdk-aws-backup render backup.yaml --org-policy
    cdk-aws-backup diff backup.yaml --notify
    cdk-aws-backup docs --check
"""
# Standard
import json
import logging
from pathlib import Path
from typing import Optional
# Installed
import boto3
from botocore.exceptions import BotoCoreError, ClientError
import click
# Local
from cdk_aws_backup import docs as docs_generator
from cdk_aws_backup.drift import detect_drift, notify_drift
from cdk_aws_backup.errors import BackupConfigurationError, DriftDetectionError
from cdk_aws_backup.helpers import configure_logging, get_backup_client
from cdk_aws_backup.organization_policy import render_backup_policy
from cdk_aws_backup.parameters import load_parameters
from cdk_aws_backup.plans import NormalizedBackup, describe, normalize

logger = logging.getLogger(__name__)

DRIFT_EXIT_CODE = 2


def _echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def _load(params_file: str, account: Optional[str] = None, region: Optional[str] = None) -> NormalizedBackup:
    try:
        return normalize(load_parameters(params_file), account=account, region=region)
    except BackupConfigurationError as e:
        logger.error(f"Invalid parameters in {params_file}: {e}")
        raise click.ClickException(str(e)) from e


@click.group()
@click.option("--log-level", default=None,
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
              help="Console log level. Defaults to CONSOLE_LOG_LEVEL or INFO.")
def cli(log_level: Optional[str]):
    """Validate, render and check AWS Backup module parameters"""
    configure_logging(console_log_level=log_level)


@cli.command()
@click.argument("params_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--account", default=None, help="Deployment account id, used to classify copy actions.")
@click.option("--region", default=None, help="Deployment region, used to classify copy actions.")
def validate(params_file: str, account: Optional[str], region: Optional[str]):
    """Check that PARAMS_FILE describes a valid set of backup resources"""
    normalized = _load(params_file, account=account, region=region)
    if not normalized.enabled:
        click.echo(f"{params_file} is valid: module disabled, no resources")
        return

    vault = normalized.vault.name if normalized.vault else "none (rules target Default)"
    click.echo(f"{params_file} is valid")
    click.echo(f"  vault: {vault}")
    for plan in normalized.plans:
        click.echo(f"  plan {plan.name}: {len(plan.rules)} rule(s), {len(plan.selections)} selection(s)")
    if normalized.needs_service_role:
        click.echo("  a service role will be created")
    if normalized.audit_framework:
        click.echo(f"  audit framework: {normalized.audit_framework.framework_name}")
    if normalized.reports:
        click.echo(f"  report plans: {', '.join(report.name for report in normalized.reports)}")
    if normalized.organization_policy:
        click.echo(f"  organization policy: {normalized.organization_policy.name}")


@cli.command()
@click.argument("params_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--org-policy", is_flag=True, help="Print the organization backup policy document instead.")
def render(params_file: str, org_policy: bool):
    """Print the normalized resources of PARAMS_FILE as JSON"""
    if org_policy:
        try:
            _echo_json(render_backup_policy(load_parameters(params_file)))
        except BackupConfigurationError as e:
            logger.error(f"Unable to render organization policy from {params_file}: {e}")
            raise click.ClickException(str(e)) from e
        return
    _echo_json(describe(_load(params_file)))


@cli.command()
@click.argument("params_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--region", default=None, help="Region to compare against. Defaults to AWS_REGION.")
@click.option("--no-selections", is_flag=True, help="Skip the comparison of backup selections.")
@click.option("--notify", is_flag=True, help="Publish the report to SNS_TOPIC_ARN when drift is found.")
@click.pass_context
def diff(ctx: click.Context, params_file: str, region: Optional[str], no_selections: bool, notify: bool):
    """Compare PARAMS_FILE against the deployed AWS Backup resources. Exits 2 on drift."""
    normalized = _load(params_file, region=region)
    client = boto3.client("backup", region_name=region) if region else get_backup_client()
    try:
        report = detect_drift(normalized, client=client, include_selections=not no_selections)
    except DriftDetectionError as e:
        logger.error(f"Drift detection failed: {e}")
        raise click.ClickException(str(e)) from e

    _echo_json(report.to_dict())
    if report.has_drift:
        if notify:
            try:
                notify_drift(report)
            except (ClientError, BotoCoreError) as e:
                logger.error(f"Drift notification failed: {e}")
                raise click.ClickException(f"Drift found but the notification failed: {e}") from e
        ctx.exit(DRIFT_EXIT_CODE)


@cli.command()
@click.option("--config", "config_path", default=".docs.yml", show_default=True,
              type=click.Path(dir_okay=False), help="Docs config, relative to the root.")
@click.option("--root", default=".", show_default=True, type=click.Path(file_okay=False),
              help="Repository root.")
@click.option("--check", is_flag=True, help="Exit 1 if the documentation is out of date, without writing it.")
@click.pass_context
def docs(ctx: click.Context, config_path: str, root: str, check: bool):
    """Regenerate the README from the docs config"""
    root_path = Path(root)
    try:
        config = docs_generator.load_docs_config(root_path / config_path)
        changed = docs_generator.write(config, root_path, check=check)
    except BackupConfigurationError as e:
        logger.error(f"Documentation generation failed: {e}")
        raise click.ClickException(str(e)) from e

    output = root_path / config.output.file
    if check:
        if changed:
            click.echo(f"{output} is out of date, run `cdk-aws-backup docs`", err=True)
            ctx.exit(1)
        click.echo(f"{output} is up to date")
        return
    click.echo(f"{'Updated' if changed else 'Unchanged'}: {output}")


if __name__ == "__main__":
    cli()
