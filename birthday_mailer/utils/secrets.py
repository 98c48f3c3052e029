import json
import os

import boto3

from birthday_mailer.utils.logger import get_logger

logger = get_logger("secrets")


def _region_name() -> str:
    return os.getenv("AWS_REGION", "us-east-1")


def get_secret(secret_name: str, region_name: str = None) -> dict:
    """
    Fetch a JSON secret from AWS Secrets Manager.

    Expects the secret value to be a JSON object, e.g. for SendGrid:

        {"api_key": "SG...."}

    or for the directory bind account:

        {"bind_user": "CORP\\svc-birthday", "bind_password": "..."}
    """
    if not secret_name:
        raise RuntimeError("Secret name must not be empty")

    region_name = region_name or _region_name()

    logger.info(
        "secrets.fetch: secret_name=%s region=%s",
        secret_name,
        region_name,
    )

    client = boto3.client("secretsmanager", region_name=region_name)

    resp = client.get_secret_value(SecretId=secret_name)
    secret_str = resp.get("SecretString")

    if not secret_str:
        msg = f"Secret '{secret_name}' has no SecretString payload"
        logger.error(msg)
        raise RuntimeError(msg)

    try:
        data = json.loads(secret_str)
    except json.JSONDecodeError as e:
        logger.error(
            "secrets.invalid_json: secret_name=%s error=%s",
            secret_name,
            str(e),
        )
        raise

    if not isinstance(data, dict):
        msg = f"Secret '{secret_name}' must be a JSON object"
        logger.error(msg)
        raise RuntimeError(msg)

    return data
