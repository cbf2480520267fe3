"""
Template loading for the tool and assistant that get cloned into user accounts.

Template files are JSON or YAML. When variables are supplied they are rendered through
Jinja2 first, so deploy-time values such as a webhook URL can be written as
``{{ webhook_url }}``; platform placeholders must then sit in ``{% raw %}`` blocks.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError, meta

from ..config.settings import get_settings
from .exceptions.vapi_exceptions import ValidationError
from .logging import get_logger
from .models import ResourceKind
from .sanitizer import validate_resource
from .version import get_base_name, parse_version_from_name

logger = get_logger(__name__)

SUPPORTED_SUFFIXES = ('.json', '.yaml', '.yml')


class TemplateLoader:
    """Loads and validates the tool and assistant templates."""

    def __init__(
        self,
        templates_dir: Optional[str] = None,
        tool_file: Optional[str] = None,
        assistant_file: Optional[str] = None,
        variables: Optional[Dict[str, Any]] = None
    ):
        settings = get_settings()
        self.templates_dir = Path(templates_dir or settings.templates_dir)
        self.files = {
            ResourceKind.TOOL: tool_file or settings.tool_template_file,
            ResourceKind.ASSISTANT: assistant_file or settings.assistant_template_file,
        }
        self.variables = dict(variables or {})
        self.jinja_env = Environment(
            loader=FileSystemLoader(str(self.templates_dir)),
            autoescape=False,
            undefined=StrictUndefined
        )

    def template_path(self, kind: ResourceKind) -> Path:
        return self.templates_dir / self.files[ResourceKind(kind)]

    def get_template_variables(self, kind: ResourceKind) -> List[str]:
        """List the Jinja2 variables a template expects."""
        path = self.template_path(kind)
        content = path.read_text(encoding='utf-8')
        parsed = self.jinja_env.parse(content)
        return sorted(meta.find_undeclared_variables(parsed))

    def load(self, kind: ResourceKind) -> Dict[str, Any]:
        """Render, parse and validate one template."""
        kind = ResourceKind(kind)
        path = self.template_path(kind)

        if not path.exists():
            raise ValidationError(f"{kind.value.capitalize()} template not found: {path}")
        if path.suffix.lower() not in SUPPORTED_SUFFIXES:
            raise ValidationError(f"Unsupported template format: {path.suffix}")

        data = self._parse(self._render(kind, path), path)
        if not validate_resource(kind, data):
            raise ValidationError(f"Invalid {kind.value} template: {path}")
        if not data.get('name'):
            raise ValidationError(f"{kind.value.capitalize()} template must have a name: {path}")

        logger.info(
            "Loaded %s template %r (base=%r, version=%s)",
            kind.value, data['name'], get_base_name(data['name']),
            parse_version_from_name(data['name']) or 'none'
        )
        return data

    def load_all(self) -> Dict[ResourceKind, Dict[str, Any]]:
        return {kind: self.load(kind) for kind in (ResourceKind.TOOL, ResourceKind.ASSISTANT)}

    def _render(self, kind: ResourceKind, path: Path) -> str:
        # Without variables the file is used verbatim, leaving platform placeholders alone
        if not self.variables:
            return path.read_text(encoding='utf-8')

        try:
            template = self.jinja_env.get_template(self.files[kind])
            return template.render(**self.variables)
        except TemplateError as e:
            raise ValidationError(f"Could not render {kind.value} template: {e}") from e

    def _parse(self, content: str, path: Path) -> Dict[str, Any]:
        try:
            if path.suffix.lower() == '.json':
                data = json.loads(content)
            else:
                data = yaml.safe_load(content)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ValidationError(f"Invalid template {path.name}: {e}") from e

        if not isinstance(data, dict):
            raise ValidationError(f"Template {path.name} must contain an object")
        return data
