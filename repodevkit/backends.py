# repodevkit/backends.py
# -*- coding: utf-8 -*-
"""
Artifact store backends

Features:
- Backend contract: list(), fetch_metadata(key), remove(key)
- local: flat directory, base file names, subdirectories skipped
- s3: S3-compatible object store through boto3 (MinIO, Ceph, AWS), bucket probe on construction
- http: namespace service (list / fetch / remove routes) through urllib with a bearer token,
  credentials given explicitly or resolved from a YAML profile store
- new_backend(): picks the implementation once from a string discriminator
"""

from __future__ import annotations
import os
import json
import urllib.error
import urllib.parse
import urllib.request
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

import boto3
import yaml
from botocore.exceptions import BotoCoreError, ClientError

from .artifact import PackageArtifact, decode_metadata
from .errors import BackendError, BackendIOError
from .logging import get_logger

logger = get_logger("backends")

ENV_PROFILES = "REPODEVKIT_PROFILES"
DEFAULT_HTTP_TIMEOUT = 30


def _truthy(val: Any, default: bool = True) -> bool:
    if val is None or val == "":
        return default
    if isinstance(val, bool):
        return val
    return str(val).strip().lower() not in ("false", "0", "no", "off")


# -----------------------
# Contract
# -----------------------
class Backend(ABC):
    kind = "abstract"

    @abstractmethod
    def list(self) -> List[str]:
        """Every key in the store, without leading separator."""

    @abstractmethod
    def read(self, key: str) -> bytes:
        """Raw content of one key."""

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete one key; deleting an absent key is not an error."""

    def fetch_metadata(self, key: str) -> PackageArtifact:
        return decode_metadata(self.read(key), source=key)

    def describe(self) -> str:
        return self.kind


# -----------------------
# Local directory
# -----------------------
class LocalBackend(Backend):
    kind = "local"

    def __init__(self, path: Optional[str]):
        if not path:
            raise BackendError("local backend: empty path")
        root = os.path.abspath(os.path.expanduser(path))
        if not os.path.exists(root):
            raise BackendError(f"local backend: path {path} does not exist")
        if not os.path.isdir(root):
            raise BackendError(f"local backend: path {path} is not a directory")
        self.root = root

    def list(self) -> List[str]:
        try:
            entries = sorted(os.listdir(self.root))
        except OSError as e:
            raise BackendIOError(f"local backend: cannot list {self.root}: {e}") from e
        return [e for e in entries if not os.path.isdir(os.path.join(self.root, e))]

    def read(self, key: str) -> bytes:
        try:
            with open(os.path.join(self.root, key), "rb") as f:
                return f.read()
        except OSError as e:
            raise BackendIOError(f"local backend: cannot read {key}: {e}") from e

    def remove(self, key: str) -> None:
        try:
            os.remove(os.path.join(self.root, key))
        except FileNotFoundError:
            logger.debug("backends: %s already absent", key)
        except OSError as e:
            raise BackendIOError(f"local backend: cannot remove {key}: {e}") from e

    def describe(self) -> str:
        return f"local:{self.root}"


# -----------------------
# S3-compatible object store
# -----------------------
class S3Backend(Backend):
    kind = "s3"
    REQUIRED = ("bucket", "endpoint", "access-key", "secret-key")

    def __init__(self, opts: Dict[str, Any]):
        missing = [k for k in self.REQUIRED if not opts.get(k)]
        if missing:
            raise BackendError(f"s3 backend: missing option(s) {', '.join(missing)}")
        self.bucket = str(opts["bucket"])
        self.region = opts.get("region") or None
        self.tls = _truthy(opts.get("tls"), True)
        endpoint = str(opts["endpoint"])
        if "://" not in endpoint:
            endpoint = ("https://" if self.tls else "http://") + endpoint
        self.endpoint = endpoint

        try:
            self.client = boto3.client(
                "s3",
                endpoint_url=self.endpoint,
                aws_access_key_id=str(opts["access-key"]),
                aws_secret_access_key=str(opts["secret-key"]),
                region_name=self.region,
                use_ssl=self.tls,
            )
        except (BotoCoreError, ValueError) as e:
            raise BackendError(f"s3 backend: cannot create client for {self.endpoint}: {e}") from e
        self._probe_bucket()

    def _probe_bucket(self):
        try:
            self.client.head_bucket(Bucket=self.bucket)
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in ("404", "NoSuchBucket", "NotFound"):
                raise BackendError(f"s3 backend: bucket {self.bucket} not found") from e
            raise BackendError(f"s3 backend: cannot access bucket {self.bucket}: {e}") from e
        except BotoCoreError as e:
            raise BackendError(f"s3 backend: cannot reach {self.endpoint}: {e}") from e
        logger.debug("backends: bucket %s reachable on %s", self.bucket, self.endpoint)

    def list(self) -> List[str]:
        keys: List[str] = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket):
                for obj in page.get("Contents", []) or []:
                    keys.append(obj["Key"].lstrip("/"))
        except (ClientError, BotoCoreError) as e:
            raise BackendIOError(f"s3 backend: listing {self.bucket} failed: {e}") from e
        return keys

    def read(self, key: str) -> bytes:
        try:
            resp = self.client.get_object(Bucket=self.bucket, Key=key)
            return resp["Body"].read()
        except (ClientError, BotoCoreError) as e:
            raise BackendIOError(f"s3 backend: cannot fetch {key}: {e}") from e

    def remove(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise BackendIOError(f"s3 backend: cannot remove {key}: {e}") from e

    def describe(self) -> str:
        return f"s3:{self.endpoint}/{self.bucket}"


# -----------------------
# HTTP namespace service
# -----------------------
def profile_store_path() -> Optional[Path]:
    env = os.environ.get(ENV_PROFILES)
    candidates = [Path(env)] if env else []
    candidates += [Path.cwd() / "profiles.yaml", Path.home() / ".config" / "repodevkit" / "profiles.yaml"]
    for p in candidates:
        if p.exists():
            return p
    return None


def load_profile(name: str, path: Optional[Path] = None) -> Dict[str, str]:
    """Return {"master": url, "api_key": key} for a named profile."""
    path = path or profile_store_path()
    if path is None:
        raise BackendError(f"http backend: no profile store found for profile '{name}'")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        raise BackendError(f"http backend: cannot read profile store {path}: {e}") from e
    profiles = data.get("profiles") if isinstance(data, dict) else None
    prof = (profiles or {}).get(name)
    if not isinstance(prof, dict) or not prof.get("master") or not prof.get("api_key"):
        raise BackendError(f"http backend: profile '{name}' not found or incomplete in {path}")
    return {"master": str(prof["master"]), "api_key": str(prof["api_key"])}


class HttpBackend(Backend):
    kind = "http"

    def __init__(self, opts: Dict[str, Any], opener: Optional[urllib.request.OpenerDirector] = None):
        self.namespace = opts.get("namespace")
        if not self.namespace:
            raise BackendError("http backend: missing option namespace")
        if opts.get("profile"):
            prof = load_profile(str(opts["profile"]))
            master, api_key = prof["master"], prof["api_key"]
        else:
            master, api_key = opts.get("master-url"), opts.get("api-key")
            if not master or not api_key:
                raise BackendError("http backend: either profile or master-url + api-key are required")
        self.master = str(master).rstrip("/")
        self.timeout = int(opts.get("timeout") or DEFAULT_HTTP_TIMEOUT)
        self.opener = opener or urllib.request.build_opener()
        self.opener.addheaders = [
            ("Authorization", f"Bearer {api_key}"),
            ("User-Agent", "repodevkit"),
        ]

    def _url(self, route: str) -> str:
        return f"{self.master}{route}"

    def _call(self, req: urllib.request.Request, what: str) -> bytes:
        try:
            with self.opener.open(req, timeout=self.timeout) as resp:
                return resp.read()
        except urllib.error.HTTPError as e:
            raise BackendIOError(f"http backend: {what} failed with HTTP {e.code}") from e
        except (urllib.error.URLError, OSError) as e:
            raise BackendIOError(f"http backend: {what} failed: {e}") from e

    def list(self) -> List[str]:
        ns = urllib.parse.quote(self.namespace, safe="")
        body = self._call(urllib.request.Request(self._url(f"/api/namespace/{ns}/list")), "listing")
        try:
            paths = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise BackendIOError(f"http backend: invalid listing response: {e}") from e
        if not isinstance(paths, list):
            raise BackendIOError("http backend: listing response is not a list")
        return [str(p).lstrip("/") for p in paths]

    def read(self, key: str) -> bytes:
        ns = urllib.parse.quote(self.namespace, safe="")
        url = self._url(f"/namespace/{ns}/{urllib.parse.quote(key, safe='')}")
        return self._call(urllib.request.Request(url), f"fetch of {key}")

    def remove(self, key: str) -> None:
        ns = urllib.parse.quote(self.namespace, safe="")
        data = urllib.parse.urlencode({"path": "/" + key}).encode("utf-8")
        req = urllib.request.Request(self._url(f"/api/namespace/{ns}/remove"), data=data, method="POST")
        req.add_header("Content-Type", "application/x-www-form-urlencoded")
        self._call(req, f"removal of {key}")

    def describe(self) -> str:
        return f"http:{self.master}/{self.namespace}"


# -----------------------
# Factory
# -----------------------
BACKENDS = ("local", "s3", "http")


def new_backend(kind: str, path: Optional[str] = None, opts: Optional[Dict[str, Any]] = None) -> Backend:
    opts = opts or {}
    if kind == "local":
        backend: Backend = LocalBackend(path)
    elif kind == "s3":
        backend = S3Backend(opts)
    elif kind == "http":
        backend = HttpBackend(opts)
    else:
        raise BackendError(f"unsupported backend '{kind}'")
    logger.info("backends: using %s", backend.describe())
    return backend
