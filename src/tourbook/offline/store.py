"""
Durable draft storage.

A draft is a booking attempt that the booking endpoint has not yet
acknowledged. Stores only ever touch one record at a time (create one,
delete one, read all), so the interactive flow and the replay worker can
share a store without overwriting each other's changes.
"""

import json
import os
import re
import tempfile
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError


LOGGER = structlog.get_logger(__name__)

DRAFT_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


class DraftStoreError(Exception):
    """Raised when the draft store cannot complete an operation."""


def new_draft_id() -> str:
    """Random draft id; also used as the idempotency key of the submission."""
    return f"draft_{uuid.uuid4().hex}"


@dataclass
class Draft:
    id: str
    payload: dict
    created_at: str

    @classmethod
    def new(cls, payload: dict) -> "Draft":
        return cls(
            id=new_draft_id(),
            payload=payload,
            created_at=datetime.now(timezone.utc).isoformat(),
        )

    def to_dict(self) -> dict:
        return {"id": self.id, "payload": self.payload, "createdAt": self.created_at}

    @classmethod
    def from_dict(cls, data: dict) -> "Draft":
        """
        Raises:
            ValueError: If data is not a draft record
        """
        if not isinstance(data, dict):
            raise ValueError(f"Draft record must be an object, not {type(data).__name__}")
        draft = cls(id=data["id"], payload=data["payload"], created_at=data["createdAt"])
        if not isinstance(draft.id, str) or not isinstance(draft.created_at, str):
            raise ValueError("Draft id and createdAt must be strings")
        if not isinstance(draft.payload, dict):
            raise ValueError("Draft payload must be an object")
        return draft


class DraftStore(ABC):
    """Keyed record store for drafts."""

    @abstractmethod
    def create(self, draft: Draft) -> None:
        """Persist a new draft. Raises DraftStoreError if the id is taken."""
        ...

    @abstractmethod
    def all(self) -> list[Draft]:
        """Every pending draft, oldest first."""
        ...

    @abstractmethod
    def delete(self, draft_id: str) -> bool:
        """Remove one draft. Returns False if it was already gone."""
        ...


class FileDraftStore(DraftStore):
    """One JSON file per draft in a local directory."""

    def __init__(self, directory: str):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, draft_id: str) -> Path:
        if not DRAFT_ID_PATTERN.match(draft_id):
            raise DraftStoreError(f"Invalid draft id: {draft_id!r}")
        return self.directory / f"{draft_id}.json"

    def create(self, draft: Draft) -> None:
        path = self._path(draft.id)
        if path.exists():
            raise DraftStoreError(f"Draft already exists: {draft.id}")

        # Write to a temp file and rename so readers never see half a draft
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(draft.to_dict(), f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except OSError as e:
            Path(tmp_path).unlink(missing_ok=True)
            raise DraftStoreError(f"Could not save draft {draft.id}: {e}") from e

    def all(self) -> list[Draft]:
        drafts = []
        for path in self.directory.glob("draft_*.json"):
            try:
                with open(path) as f:
                    drafts.append(Draft.from_dict(json.load(f)))
            except FileNotFoundError:
                # Deleted by another process between glob and open
                continue
            except (OSError, ValueError, KeyError, TypeError) as e:
                # Left in place for inspection; the other drafts still load
                LOGGER.error("drafts.file.unreadable", path=str(path), error=str(e))
        return sorted(drafts, key=lambda d: d.created_at)

    def delete(self, draft_id: str) -> bool:
        try:
            self._path(draft_id).unlink()
        except FileNotFoundError:
            return False
        return True


class DynamoDraftStore(DraftStore):
    """Drafts kept in a DynamoDB table keyed by ``id``."""

    def __init__(self, table_name: str, client=None, region: str = "us-east-1"):
        self.table_name = table_name
        self.client = client or boto3.client("dynamodb", region_name=region)

    def create(self, draft: Draft) -> None:
        try:
            self.client.put_item(
                TableName=self.table_name,
                Item={
                    "id": {"S": draft.id},
                    "payload": {"S": json.dumps(draft.payload)},
                    "created_at": {"S": draft.created_at},
                },
                ConditionExpression="attribute_not_exists(#id)",
                ExpressionAttributeNames={"#id": "id"},
            )
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                raise DraftStoreError(f"Draft already exists: {draft.id}") from e
            raise DraftStoreError(f"Could not save draft {draft.id}: {e}") from e
        except BotoCoreError as e:
            raise DraftStoreError(f"Could not save draft {draft.id}: {e}") from e

    def all(self) -> list[Draft]:
        drafts = []
        kwargs = {"TableName": self.table_name}
        try:
            while True:
                response = self.client.scan(**kwargs)
                for item in response.get("Items", []):
                    try:
                        drafts.append(Draft.from_dict({
                            "id": item["id"]["S"],
                            "payload": json.loads(item["payload"]["S"]),
                            "createdAt": item["created_at"]["S"],
                        }))
                    except (ValueError, KeyError, TypeError) as e:
                        LOGGER.error("drafts.item.unreadable", item_id=item.get("id"), error=str(e))
                last_key: Optional[dict] = response.get("LastEvaluatedKey")
                if not last_key:
                    break
                kwargs["ExclusiveStartKey"] = last_key
        except (ClientError, BotoCoreError) as e:
            raise DraftStoreError(f"Could not list drafts: {e}") from e

        return sorted(drafts, key=lambda d: d.created_at)

    def delete(self, draft_id: str) -> bool:
        try:
            response = self.client.delete_item(
                TableName=self.table_name,
                Key={"id": {"S": draft_id}},
                ReturnValues="ALL_OLD",
            )
        except (ClientError, BotoCoreError) as e:
            raise DraftStoreError(f"Could not delete draft {draft_id}: {e}") from e
        return "Attributes" in response


def create_store(settings) -> DraftStore:
    """Build the draft store named by OfflineSettings."""
    if settings.store == "dynamodb":
        return DynamoDraftStore(settings.dynamo_table, region=settings.region)
    return FileDraftStore(settings.drafts_dir)
