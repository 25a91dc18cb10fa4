"""Logging, AWS client and alerting helpers shared by the command line tools"""
# Standard
import copy
from datetime import date, datetime
from functools import lru_cache
import json
import logging
import os
import traceback
from typing import Any, Mapping, Optional, Tuple
# Installed
import boto3
from botocore.config import Config
# Local
from cdk_aws_backup.constructs.constants import BackupEnv

logger = logging.getLogger(__name__)


@lru_cache
def get_backup_client():
    """Creates and returns an AWS Backup client with standard retries and environment-based configuration."""
    region = os.environ.get(BackupEnv.AWS_REGION.value, "us-west-2")
    max_attempts = int(os.environ.get(BackupEnv.BACKUP_CLIENT_MAX_ATTEMPTS.value, 5))

    config = Config(
        region_name=region,
        retries={
            "max_attempts": max_attempts,  # Retries after the first call
            "mode": "standard",  # Retries throttling and transient errors with exponential backoff
        },
    )
    return boto3.client("backup", config=config)


def _json_serialize_default(o: Any) -> str:
    """
    A standard 'default' json serializer function.

    - Serializes datetime objects using their .isoformat() method.

    - Serializes all other objects using repr().
    """
    if isinstance(o, (date, datetime)):
        return o.isoformat()
    return repr(o)


class JsonLogFormatter(logging.Formatter):
    """Formats log records as one JSON object per line. Dict messages become structured fields."""

    _default_log_record_attrs = ('created', 'name', 'module', 'lineno', 'funcName', 'levelname')

    def __init__(
            self,
            *args,
            add_log_record_attrs: Optional[Tuple[str, ...]] = None,
            custom_log_record_attrs: Optional[Mapping[str, Any]] = None,
            add_asctime: bool = True,
            **kwargs,
    ):
        """

        Parameters
        ----------
        add_log_record_attrs : Optional[Tuple[str, ...]]
            Tuple of log record attributes to add to the resulting structured JSON structure that comes out of the
            logging formatter. Default None.
        custom_log_record_attrs : Optional[Mapping[str, Any]]
            Additional static log record attributes to add to the log record. Default None.
        add_asctime : bool
            If True, adds an ASCII (ISO 8601-like) timestamp to the log record. Default True.
        """
        super().__init__(*args, **kwargs)
        self.add_log_record_attrs = add_log_record_attrs or self._default_log_record_attrs
        self.custom_log_record_attrs = custom_log_record_attrs
        self.add_asctime = add_asctime

    def format(self, record: logging.LogRecord) -> str:
        """Format log message to a string

        Parameters
        ----------
        record : logging.LogRecord
            Log record object containing the logged message, which may be a dict (Mapping) or a string
        """
        # Interpolate %-style args before the message becomes a dict
        if isinstance(record.msg, str) and record.args:
            record.msg = record.msg % record.args
            record.args = None

        # Copy dict messages so the caller's data is never mutated
        msg = copy.deepcopy(record.msg) if isinstance(record.msg, Mapping) else {"msg": record.msg}

        if self.add_asctime:
            msg["asctime"] = self.formatTime(record)

        for field in self.add_log_record_attrs:
            if field != "msg":
                msg[field] = getattr(record, field)

        if self.custom_log_record_attrs:
            for field, value in self.custom_log_record_attrs.items():
                msg[field] = value

        if record.exc_info:
            msg["traceback"] = ''.join(traceback.format_exception(*record.exc_info))

        return json.dumps(msg, default=_json_serialize_default)


def configure_logging(console_log_level: Optional[str] = None,
                      context_attributes: Optional[Mapping[str, Any]] = None) -> None:
    """Configure JSON console logging on the root logger.

    This is an idempotent configuration function. Calling it more than once simply re-configures the logging system.

    Parameters
    ----------
    console_log_level : Optional[str]
        Level of the console handler. Default None, which reads CONSOLE_LOG_LEVEL and falls back to INFO.
    context_attributes : Optional[Mapping[str, Any]]
        Specific context attributes to set on every log message. Default None.
    """
    if console_log_level is None:
        console_log_level = os.environ.get(BackupEnv.CONSOLE_LOG_LEVEL.value, 'INFO')

    stream_json_formatter = JsonLogFormatter(
        add_log_record_attrs=('levelname', 'process', 'filename', 'name', 'funcName', 'lineno'),
        custom_log_record_attrs=context_attributes,
    )

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(stream_json_formatter)
    console_handler.setLevel(console_log_level.upper())

    root_logger = logging.getLogger()
    root_logger.setLevel('DEBUG')
    root_logger.handlers = [console_handler]

    # Set nuisance loggers to WARNING level
    for logger_name in ("botocore",
                        "boto3",
                        "urllib3",
                        "s3transfer"):
        logging.getLogger(logger_name).setLevel('WARNING')


def send_sns_message(error_type: str, subject: str, msg_content: dict) -> bool:
    """
    Sends a formatted SNS notification using the AWS Chatbot-compatible message structure.

    Parameters
    ----------
    error_type : str
        A string that categorizes the message (e.g., "BackupDrift"). Sent as a message attribute to facilitate
        filtering or routing.
    subject : str
        The subject line of the SNS message.
    msg_content : dict
        The message body, formatted according to the AWS Chatbot `client-markdown` structure.
        Must include keys like "textType", "title", and "description".

    Returns
    -------
    : bool
        True if the message was published, False if SNS_TOPIC_ARN is not set.
    """
    sns_topic_arn = os.environ.get(BackupEnv.SNS_TOPIC_ARN.value)
    if not sns_topic_arn:
        logger.warning("SNS_TOPIC_ARN is not set. Skipping SNS notification.")
        return False

    message = {
        "version": "1.0",
        "source": "custom",
        "content": msg_content,
        "metadata": {
            "enableCustomActions": False,
        }
    }

    sns_client = boto3.client("sns")
    try:
        sns_client.publish(
            TopicArn=sns_topic_arn,
            Subject=subject,
            Message=json.dumps(message),
            MessageAttributes={
                "ErrorType": {
                    "DataType": "String",
                    "StringValue": error_type
                }
            }
        )
    except Exception as e:
        logger.exception(f"Failed to send SNS notification: {e}")
        raise
    logger.info(f"SNS notification sent to {sns_topic_arn}: {subject}")
    return True
