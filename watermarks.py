#!/usr/bin/env python3
"""
Watermark persistence.

Watermarks map a feed id to the newest entry timestamp already reported for
that feed. They are read once when a run starts and written once when it ends.
YamlWatermarkStore keeps them in a small YAML mapping:

```yaml
https://go.dev/blog: '2024-05-02T00:00:00+00:00'
https://www.reddit.com/r/golang/: '2024-05-03T12:41:09+00:00'
```
"""

import os
import tempfile
from datetime import datetime, timezone
from typing import Dict, Protocol

import yaml

from config import get_logger
from dates import format_rfc3339, parse_time
from errors import ConfigError
from models import Watermarks

logger = get_logger("watermarks")


class WatermarkStore(Protocol):
    def load(self) -> Watermarks:
        ...

    def save(self, watermarks: Watermarks) -> None:
        ...


class YamlWatermarkStore:
    """Watermarks stored as RFC 3339 strings in a YAML file."""

    def __init__(self, file_path: str):
        self.file_path = file_path

    def load(self) -> Watermarks:
        """Read the watermark file. A missing or empty file means no feed was seen yet.

        Raises:
            ConfigError: The file exists but cannot be read or is not a mapping.
        """
        if not os.path.exists(self.file_path):
            logger.info(f"no timestamps file at {self.file_path}, treating all feeds as unseen")
            return {}
        try:
            with open(self.file_path, 'r', encoding='utf-8') as f:
                raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"failed to parse timestamps file {self.file_path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"failed to read timestamps file {self.file_path}: {e}") from e

        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise ConfigError(f"timestamps file {self.file_path} must contain a mapping")

        watermarks: Watermarks = {}
        for key, value in raw.items():
            # YAML may already have turned an unquoted timestamp into a datetime
            if isinstance(value, datetime):
                parsed = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
            else:
                parsed = parse_time(str(value)) if value is not None else None
            if parsed is None:
                logger.warning(f"Ignoring unparseable timestamp {value!r} for feed {key!r}")
                continue
            watermarks[str(key)] = parsed
        logger.info(f"read {len(watermarks)} feed timestamps from {self.file_path}")
        return watermarks

    def save(self, watermarks: Watermarks) -> None:
        """Write all watermarks, replacing the file atomically.

        Raises:
            ConfigError: The file cannot be written.
        """
        rows: Dict[str, str] = {key: format_rfc3339(value) for key, value in sorted(watermarks.items())}
        directory = os.path.dirname(os.path.abspath(self.file_path))
        try:
            with tempfile.NamedTemporaryFile('w', dir=directory, delete=False, encoding='utf-8', suffix='.tmp') as f:
                yaml.safe_dump(rows, f, default_flow_style=False, allow_unicode=True)
                tmp_name = f.name
            os.replace(tmp_name, self.file_path)
        except OSError as e:
            raise ConfigError(f"failed to write timestamps file {self.file_path}: {e}") from e
        logger.info(f"wrote {len(rows)} feed timestamps to {self.file_path}")
