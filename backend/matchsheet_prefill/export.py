"""
Export and distribution of template and generated PDFs.

Two logical buckets are used: `templates` for uploaded match-sheet templates
and `generated_pdfs` for filled sheets. A name is routed to the generated
bucket when it starts with `feuille_match_` or was given with a
`generated_pdfs` prefix; lookups fall back to the other bucket.
"""

from __future__ import annotations

import datetime as dt
import logging
import os
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Tuple

import boto3
from botocore.exceptions import ClientError

from .models import Tournament

logger = logging.getLogger(__name__)

TEMPLATES_BUCKET = "templates"
GENERATED_BUCKET = "generated_pdfs"
GENERATED_PREFIX = "feuille_match_"
BUCKETS = (TEMPLATES_BUCKET, GENERATED_BUCKET)


def generated_filename(tournament: Tournament, now: Optional[dt.datetime] = None) -> str:
    """`feuille_match_<location>_<YYYY-MM-DD>_<epoch ms>.pdf`"""
    now = now or dt.datetime.now(dt.timezone.utc)
    location = re.sub(r"\s+", "_", (tournament.location or "").strip())
    stamp = int(now.timestamp() * 1000)
    try:
        date = tournament.iso_date
    except (TypeError, ValueError):
        # Unparseable dates keep their text, minus path-unsafe characters.
        date = re.sub(r"[^\w\-]+", "-", str(tournament.date or "")).strip("-")
    return f"{GENERATED_PREFIX}{location}_{date}_{stamp}.pdf"


def normalize_locator(locator: str) -> str:
    """Reduce a URL or bucket-prefixed path to a path inside its bucket."""
    normalized = (locator or "").strip().strip("/")
    if "://" in normalized:
        normalized = normalized.split("/")[-1]

    segments = normalized.split("/")
    if len(segments) > 1 and segments[0] == segments[1]:
        normalized = "/".join(segments[1:])

    # Keep what follows the last bucket name mentioned in the path.
    cut = -1
    for bucket in BUCKETS:
        pos = normalized.rfind(bucket + "/")
        if pos >= 0 and pos + len(bucket) > cut:
            cut = pos + len(bucket)
    if cut >= 0:
        normalized = normalized[cut:].lstrip("/")
    return normalized


def bucket_for(locator: str) -> str:
    normalized = normalize_locator(locator)
    if normalized.split("/")[-1].startswith(GENERATED_PREFIX) or GENERATED_BUCKET in (locator or ""):
        return GENERATED_BUCKET
    return TEMPLATES_BUCKET


def logical_path(locator: str) -> str:
    """Path under which a stored PDF is served, e.g. `/generated_pdfs/<name>`."""
    return f"/{bucket_for(locator)}/{normalize_locator(locator)}"


class BinaryStore(ABC):
    """Named byte blobs split across the template and generated buckets."""

    @abstractmethod
    def _put(self, bucket: str, name: str, data: bytes) -> None: ...

    @abstractmethod
    def _get(self, bucket: str, name: str) -> Optional[bytes]: ...

    @abstractmethod
    def _remove(self, bucket: str, name: str) -> bool: ...

    @abstractmethod
    def _names(self, bucket: str) -> List[str]: ...

    def store(self, locator: str, data: bytes) -> str:
        bucket, name = bucket_for(locator), normalize_locator(locator)
        if not name:
            raise ValueError(f"Invalid locator: {locator!r}")
        self._put(bucket, name, data)
        logger.info("Stored %s/%s (%d bytes)", bucket, name, len(data))
        return f"/{bucket}/{name}"

    def retrieve(self, locator: str, bucket: Optional[str] = None) -> Optional[bytes]:
        """Look the locator up in its bucket, then in the other one.

        With an explicit `bucket`, only that bucket is searched.
        """
        if bucket is not None:
            buckets: Tuple[str, ...] = (bucket,)
        else:
            primary = bucket_for(locator)
            secondary = GENERATED_BUCKET if primary == TEMPLATES_BUCKET else TEMPLATES_BUCKET
            buckets = (primary, secondary)
        for searched, name in self._candidates(locator, buckets):
            data = self._get(searched, name)
            if data is not None:
                logger.debug("Retrieved %s/%s", searched, name)
                return data
        logger.info("PDF not found in any bucket: %s", locator)
        return None

    def delete(self, locator: str) -> bool:
        return self._remove(bucket_for(locator), normalize_locator(locator))

    def list(self, bucket: str = TEMPLATES_BUCKET) -> List[str]:
        return sorted(self._names(bucket))

    @staticmethod
    def _candidates(locator: str, buckets: Tuple[str, ...]) -> List[Tuple[str, str]]:
        normalized = normalize_locator(locator)
        names = [normalized]
        basename = normalized.split("/")[-1]
        if basename != normalized:
            names.append(basename)
        return [(bucket, name) for bucket in buckets for name in names if name]


class LocalBinaryStore(BinaryStore):
    def __init__(self, base_dir: Path):
        self.base_dir = Path(base_dir)
        for bucket in BUCKETS:
            (self.base_dir / bucket).mkdir(parents=True, exist_ok=True)

    def _path(self, bucket: str, name: str) -> Path:
        root = (self.base_dir / bucket).resolve()
        path = (root / name).resolve()
        if root not in path.parents:
            raise ValueError(f"Locator escapes the {bucket} bucket: {name!r}")
        return path

    def _put(self, bucket: str, name: str, data: bytes) -> None:
        path = self._path(bucket, name)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("wb") as f:
            f.write(data)

    def _get(self, bucket: str, name: str) -> Optional[bytes]:
        path = self._path(bucket, name)
        if not path.is_file():
            return None
        with path.open("rb") as f:
            return f.read()

    def _remove(self, bucket: str, name: str) -> bool:
        path = self._path(bucket, name)
        if path.is_file():
            path.unlink()
            return True
        return False

    def _names(self, bucket: str) -> List[str]:
        root = self.base_dir / bucket
        return [p.relative_to(root).as_posix() for p in root.rglob("*.pdf") if p.is_file()]


class S3BinaryStore(BinaryStore):
    def __init__(self, bucket_name: str, prefix: Optional[str] = None, s3_client=None):
        self.bucket_name = bucket_name
        self.prefix = prefix if prefix is not None else os.getenv("MATCHSHEET_S3_PREFIX", "matchsheets/")
        self.s3 = s3_client or boto3.client("s3")

    def _key(self, bucket: str, name: str) -> str:
        return f"{self.prefix}{bucket}/{name}"

    def _put(self, bucket: str, name: str, data: bytes) -> None:
        self.s3.put_object(
            Bucket=self.bucket_name,
            Key=self._key(bucket, name),
            Body=data,
            ContentType="application/pdf",
        )

    def _get(self, bucket: str, name: str) -> Optional[bytes]:
        try:
            obj = self.s3.get_object(Bucket=self.bucket_name, Key=self._key(bucket, name))
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code in ("NoSuchKey", "404"):
                return None
            raise
        return obj["Body"].read()

    def _remove(self, bucket: str, name: str) -> bool:
        if self._get(bucket, name) is None:
            return False
        self.s3.delete_object(Bucket=self.bucket_name, Key=self._key(bucket, name))
        return True

    def _names(self, bucket: str) -> List[str]:
        prefix = self._key(bucket, "")
        names: List[str] = []
        paginator = self.s3.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
            for obj in page.get("Contents", []):
                names.append(obj["Key"][len(prefix):])
        return names
