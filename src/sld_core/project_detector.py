"""
Project Requirement Detector.

Inspects a project directory and reports what it needs to be served:
a PHP version constraint, a Node version and a web root. Sources are
consulted in priority order and each field is settled by the first source
that provides it:

1. ``.sld.yaml`` (``php``, ``node``, ``public``)
2. ``composer.json`` ``require.php`` for the PHP constraint
3. ``.nvmrc`` for the Node version
4. a ``public/`` subdirectory for the web root
"""

import json
from pathlib import Path
from typing import Optional

import yaml

from .audit_logger import AuditLogger
from .exceptions import DetectionError
from .models import RequirementRecord

COMPONENT = "ProjectDetector"

MANIFEST_FILE = ".sld.yaml"
COMPOSER_FILE = "composer.json"
NODE_PIN_FILE = ".nvmrc"
PUBLIC_DIR = "public"


def _manifest_value(data: dict, key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    # YAML reads `php: 8.1` as a float
    return str(value).strip()


class ProjectDetector:
    """Detects per-project runtime requirements."""

    def __init__(self, logger: Optional[AuditLogger] = None) -> None:
        self._logger = logger

    def detect(self, path) -> RequirementRecord:
        """
        Detect the requirements of the project at ``path``.

        Missing files are never an error. A manifest that exists but cannot be
        parsed is logged and recorded in ``record.errors``; detection goes on
        with the remaining sources.

        Args:
            path: Project directory

        Returns:
            RequirementRecord (empty fields mean "no opinion")
        """
        project = Path(path)
        record = RequirementRecord()

        try:
            manifest = self._read_manifest(project)
        except DetectionError as e:
            self._report(record, e)
            manifest = {}

        record.php_constraint = _manifest_value(manifest, "php")
        record.node_constraint = _manifest_value(manifest, "node")
        record.web_root = _manifest_value(manifest, "public")

        if not record.php_constraint:
            try:
                record.php_constraint = self._read_composer_php(project)
            except DetectionError as e:
                self._report(record, e)

        if not record.node_constraint:
            record.node_constraint = self._read_node_pin(project)

        if not record.web_root and (project / PUBLIC_DIR).is_dir():
            record.web_root = PUBLIC_DIR

        return record

    def _read_manifest(self, project: Path) -> dict:
        manifest_path = project / MANIFEST_FILE
        if not manifest_path.is_file():
            return {}

        try:
            with open(manifest_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise DetectionError(
                code="manifest_parse_error",
                message=f"Failed to parse {MANIFEST_FILE}: {e}",
                details={"file_path": str(manifest_path)},
            )
        except (OSError, UnicodeDecodeError):
            return {}

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise DetectionError(
                code="manifest_parse_error",
                message=f"{MANIFEST_FILE} must contain a mapping",
                details={"file_path": str(manifest_path)},
            )
        return data

    def _read_composer_php(self, project: Path) -> str:
        composer_path = project / COMPOSER_FILE
        if not composer_path.is_file():
            return ""

        try:
            with open(composer_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise DetectionError(
                code="composer_parse_error",
                message=f"Failed to parse {COMPOSER_FILE}: {e}",
                details={"file_path": str(composer_path)},
            )
        except (OSError, UnicodeDecodeError):
            return ""

        if not isinstance(data, dict):
            return ""
        require = data.get("require")
        if not isinstance(require, dict):
            return ""
        constraint = require.get("php")
        return constraint.strip() if isinstance(constraint, str) else ""

    def _read_node_pin(self, project: Path) -> str:
        pin_path = project / NODE_PIN_FILE
        if not pin_path.is_file():
            return ""
        try:
            return pin_path.read_text(encoding="utf-8").strip()
        except (OSError, UnicodeDecodeError):
            return ""

    def _report(self, record: RequirementRecord, error: DetectionError) -> None:
        record.errors.append(error.message)
        if self._logger:
            self._logger.warn(COMPONENT, error.message, error.details)
