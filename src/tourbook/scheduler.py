"""
EventBridge Scheduler wrapper for the draft replay job.

Creates a recurring schedule that invokes replay_handler every few
minutes, so drafts left behind by offline clients are delivered even when
nobody reopens the booking flow.
"""

import json
import math
import os
from typing import Optional

import boto3
from botocore.exceptions import ClientError

SCHEDULE_GROUP = "tourbook"
DEFAULT_SCHEDULE_NAME = "tourbook-draft-replay"
REGION = "us-east-1"

# Set per deployment
LAMBDA_ARN_ENV_VAR = "TOURBOOK_REPLAY_LAMBDA_ARN"
ROLE_ARN_ENV_VAR = "TOURBOOK_SCHEDULER_ROLE_ARN"


class SchedulerError(Exception):
    """Raised when a schedule cannot be created."""


def _get_client(region: str = REGION):
    """Get an EventBridge Scheduler client."""
    return boto3.client("scheduler", region_name=region)


def _ensure_schedule_group(client):
    """Create the tourbook schedule group if it doesn't exist."""
    try:
        client.get_schedule_group(Name=SCHEDULE_GROUP)
    except ClientError as e:
        if e.response["Error"]["Code"] == "ResourceNotFoundException":
            client.create_schedule_group(Name=SCHEDULE_GROUP)
        else:
            raise


def rate_expression(interval_seconds: float) -> str:
    """
    EventBridge rate expression for an interval, rounded up to whole minutes.

    E.g.: 300 -> "rate(5 minutes)", 30 -> "rate(1 minute)"
    """
    minutes = max(1, math.ceil(interval_seconds / 60))
    unit = "minute" if minutes == 1 else "minutes"
    return f"rate({minutes} {unit})"


def schedule_replay(
    interval_seconds: float,
    name: str = DEFAULT_SCHEDULE_NAME,
    lambda_arn: Optional[str] = None,
    role_arn: Optional[str] = None,
    client=None,
) -> str:
    """
    Create a recurring schedule that invokes the replay Lambda.

    Args:
        interval_seconds: Time between replay runs
        name: Schedule name
        lambda_arn: ARN of the replay_handler function (default: from environment)
        role_arn: Role EventBridge assumes to invoke it (default: from environment)
        client: Optional scheduler client, mainly for tests

    Returns:
        The schedule name.

    Raises:
        SchedulerError: If either ARN is missing
    """
    lambda_arn = lambda_arn or os.environ.get(LAMBDA_ARN_ENV_VAR)
    role_arn = role_arn or os.environ.get(ROLE_ARN_ENV_VAR)
    if not lambda_arn or not role_arn:
        raise SchedulerError(
            f"Set {LAMBDA_ARN_ENV_VAR} and {ROLE_ARN_ENV_VAR} to schedule draft replay"
        )

    client = client or _get_client()
    _ensure_schedule_group(client)

    client.create_schedule(
        Name=name,
        GroupName=SCHEDULE_GROUP,
        ScheduleExpression=rate_expression(interval_seconds),
        FlexibleTimeWindow={"Mode": "OFF"},
        Target={
            "Arn": lambda_arn,
            "RoleArn": role_arn,
            "Input": json.dumps({"source": "tourbook.scheduler"}),
        },
    )

    return name


def list_schedules(client=None) -> list[dict]:
    """
    List all schedules in the tourbook group.

    Returns:
        List of schedule dicts with name, state and schedule expression.
    """
    client = client or _get_client()

    try:
        response = client.list_schedules(GroupName=SCHEDULE_GROUP)
    except ClientError as e:
        if e.response["Error"]["Code"] == "ResourceNotFoundException":
            return []
        raise

    schedules = []
    for s in response.get("Schedules", []):
        try:
            detail = client.get_schedule(Name=s["Name"], GroupName=SCHEDULE_GROUP)
            expression = detail.get("ScheduleExpression", "")
        except ClientError:
            expression = ""

        schedules.append({
            "name": s["Name"],
            "state": s.get("State", "UNKNOWN"),
            "schedule": expression,
        })

    return schedules


def cancel_schedule(name: str, client=None) -> None:
    """Delete a schedule by name."""
    client = client or _get_client()
    client.delete_schedule(Name=name, GroupName=SCHEDULE_GROUP)
