"""Jinja2 rendering for memory files and scaffolded skills."""

from datetime import date
from pathlib import Path
from typing import Any

from jinja2 import FileSystemLoader, StrictUndefined
from jinja2.sandbox import SandboxedEnvironment

# Allowlist of package templates
ALLOWED_TEMPLATES = frozenset([
    "lessons.md.j2",
    "decisions.md.j2",
    "skill.md.j2",
])

# Legacy placeholder used by hand-written project templates
DATE_PLACEHOLDER = "[DATE]"

TEMPLATE_DIR = Path(__file__).parent.parent / "templates"


class TemplateRenderer:
    """Render package templates and project-supplied template text."""

    def __init__(self, template_dir: Path = TEMPLATE_DIR):
        # Sandboxed: project templates are user-controlled text
        self.env = SandboxedEnvironment(
            loader=FileSystemLoader(template_dir),
            undefined=StrictUndefined,
            autoescape=False,  # Markdown, not HTML
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def render(self, template_name: str, **kwargs: Any) -> str:
        """Render a package template by name."""
        if template_name not in ALLOWED_TEMPLATES:
            raise ValueError(
                f"Unknown template '{template_name}'. Allowed: {sorted(ALLOWED_TEMPLATES)}"
            )
        return self.env.get_template(template_name).render(**kwargs)

    def render_text(self, text: str, **kwargs: Any) -> str:
        """Render template text from a project file.

        Raises:
            jinja2.TemplateError: If the text is not a valid template
        """
        return self.env.from_string(text).render(**kwargs)

    def render_memory(self, name: str, project_template: Path | None = None, today: date | None = None) -> str:
        """Fresh content for memory file `name` (lessons or decisions).

        A project template is preferred over the package one; both may use
        `{{ date }}` or the `[DATE]` placeholder.
        """
        stamp = (today or date.today()).isoformat()
        if project_template is not None and project_template.is_file():
            text = self.render_text(project_template.read_text(encoding="utf-8"), date=stamp)
        else:
            text = self.render(f"{name}.md.j2", date=stamp)
        return text.replace(DATE_PLACEHOLDER, stamp)
