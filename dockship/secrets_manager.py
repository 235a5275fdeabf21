"""SecretsManager for the git access token.

Three backends: the process environment (optionally seeded from ``.env``), a
secret file, or AWS SSM Parameter Store. boto3 is only needed for the last one.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, Optional

from loguru import logger

from dockship.config import TOKEN_ENV_VAR, load_env_file

try:  # optional import for AWS mode
    import boto3  # type: ignore
except Exception:  # pragma: no cover - optional
    boto3 = None  # type: ignore


class SecretsManager:
    """
    Multi-mode secrets manager:
    - env: reads environment variables (after loading .env if present)
    - file: reads a single secret from a file
    - aws: loads from AWS SSM Parameter Store
    """

    def __init__(self, mode: str = "env", secret_file: Optional[Path] = None):
        self.mode = mode.lower().strip()
        self.secret_file = Path(secret_file).expanduser() if secret_file else None
        self._cache: Dict[str, str] = {}

        if self.mode == "env":
            load_env_file()
        elif self.mode == "file":
            self._init_file()
        elif self.mode == "aws":
            self._init_aws()
        else:
            raise ValueError(f"Unknown secrets mode: {self.mode}")

    # -------------------------
    # FILE MODE
    # -------------------------
    def _init_file(self) -> None:
        if self.secret_file is None:
            raise ValueError("file secrets mode needs a token file path")
        if not self.secret_file.is_file():
            raise FileNotFoundError(f"Token file not found at: {self.secret_file}")

    def _get_file_secret(self) -> Optional[str]:
        return self.secret_file.read_text(encoding="utf-8").strip() or None

    # -------------------------
    # AWS MODE
    # -------------------------
    def _init_aws(self) -> None:
        if boto3 is None:
            raise RuntimeError("boto3 is required for AWS secrets mode")
        self.ssm = boto3.client("ssm")

    def _get_aws_secret(self, key: str) -> Optional[str]:
        try:
            response = self.ssm.get_parameter(
                Name=key,
                WithDecryption=True,
            )
            return response.get("Parameter", {}).get("Value")
        except Exception as e:
            logger.warning(f"Could not read SSM parameter {key}: {e}")
            return None

    # -------------------------
    # PUBLIC API
    # -------------------------
    def get_secret(self, key: str = TOKEN_ENV_VAR, default: Optional[str] = None) -> Optional[str]:
        if key in self._cache:
            return self._cache[key]

        if self.mode == "env":
            value = os.getenv(key)
        elif self.mode == "file":
            value = self._get_file_secret()
        else:
            value = self._get_aws_secret(key)

        if value:
            self._cache[key] = value
            return value

        return default
