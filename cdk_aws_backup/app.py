"""CDK app deploying one BackupConstruct from a parameter file

Usage::

    cdk deploy -c parameters_file=backup.yaml

The parameter file can also be given with the BACKUP_PARAMETERS_FILE environment variable.
"""
# Standard
import logging
import os
from typing import Optional
# Installed
from constructs import Construct
from aws_cdk import App, Environment, Stack
# Local
from cdk_aws_backup.backup import BackupConstruct
from cdk_aws_backup.constructs.constants import BackupEnv
from cdk_aws_backup.errors import BackupConfigurationError
from cdk_aws_backup.helpers import configure_logging
from cdk_aws_backup.parameters import BackupParameters, load_parameters

logger = logging.getLogger(__name__)


class BackupStack(Stack):
    """Stack holding the AWS Backup module"""

    def __init__(self, scope: Construct, construct_id: str, *, parameters: BackupParameters, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)
        self.backup = BackupConstruct(self, "Backup", parameters=parameters)


def main(app: Optional[App] = None) -> App:
    """Synthesize the backup stack into the app's cloud assembly"""
    configure_logging()
    app = app or App()

    parameters_file = app.node.try_get_context("parameters_file") or os.environ.get(
        BackupEnv.BACKUP_PARAMETERS_FILE.value)
    if not parameters_file:
        raise BackupConfigurationError(
            "No parameter file given. Set the parameters_file context value or BACKUP_PARAMETERS_FILE.",
            field="parameters_file")

    parameters = load_parameters(parameters_file)
    env = Environment(
        account=os.environ.get(BackupEnv.CDK_DEFAULT_ACCOUNT.value),
        region=os.environ.get(BackupEnv.CDK_DEFAULT_REGION.value),
    )
    BackupStack(app, "BackupStack", parameters=parameters, env=env)
    logger.info(f"Synthesizing backup stack from {parameters_file}")
    app.synth()
    return app


if __name__ == "__main__":
    main()
