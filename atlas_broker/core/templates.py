"""Plan template loading and rendering."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from jinja2 import ChainableUndefined, Environment, Template, TemplateSyntaxError

from atlas_broker.config.logging import get_logger

logger = get_logger(__name__)

TEMPLATE_SUFFIXES = (".yml.tpl", ".yaml.tpl", ".yml.j2", ".yaml.j2")

# Missing context keys render empty, nested lookups on them included,
# so a template can be resolved with the minimal catalog context.
environment = Environment(
    undefined=ChainableUndefined,
    keep_trailing_newline=True,
    autoescape=False,
)


@dataclass(frozen=True)
class PlanTemplate:
    """A named, compiled plan template."""

    name: str
    source: str
    template: Template
    path: Optional[Path] = None

    @classmethod
    def from_source(cls, name: str, source: str, path: Optional[Path] = None) -> "PlanTemplate":
        """
        Compile a template.

        Raises:
            TemplateSyntaxError: If the template does not compile
        """
        return cls(name=name, source=source, template=environment.from_string(source), path=path)

    def render(self, context: Mapping[str, Any]) -> str:
        return self.template.render(**context)


def template_name(path: Path) -> Optional[str]:
    """Template name for a file, or None if the file is not a plan template."""
    for suffix in TEMPLATE_SUFFIXES:
        if path.name.endswith(suffix):
            return path.name[: -len(suffix)]
    return None


def load_templates(directory: str) -> Dict[str, PlanTemplate]:
    """
    Load every plan template in a directory.

    Templates that do not compile are logged and skipped.

    Args:
        directory: Directory containing ``*.yml.tpl`` (or ``.j2``) files

    Returns:
        Templates keyed by name, in file name order
    """
    root = Path(directory)
    if not root.is_dir():
        logger.error("template_dir_not_found", template_dir=str(root))
        return {}

    templates: Dict[str, PlanTemplate] = {}
    for path in sorted(root.iterdir()):
        name = template_name(path)
        if name is None or not path.is_file():
            continue

        try:
            templates[name] = PlanTemplate.from_source(
                name, path.read_text(encoding="utf-8"), path=path
            )
        except TemplateSyntaxError as e:
            logger.error(
                "cannot_compile_template",
                name=name,
                path=str(path),
                line=e.lineno,
                error=e.message,
            )
            continue

        logger.info("template_loaded", name=name, path=str(path))

    return templates
