"""
Base renderer for guide and report output.

Provides template loading and the filters shared by all renderers.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, select_autoescape


class BaseRenderer(ABC):
    """Base class for markdown renderers.

    Manifesto:
        Renderers turn parsed guides and validation results into
        documents. Templates handle formatting; renderers assemble the
        data the templates need.

    Architecture:
        ```
        Guide / ValidationReport
                   │
                   ▼
           Renderer._context()
                   │
                   ▼
           Jinja2 Template
                   │
                   ▼
           Rendered Markdown
        ```

    Features:
        - Load Jinja2 templates from the package (or a custom directory)
        - ``md_cell`` filter for text inside markdown tables
        - Common metadata (generation time)
    """

    # Template file name
    template_name: str = ""

    def __init__(self, template_dir: Path | None = None):
        """Initialize the renderer.

        Args:
            template_dir: Directory containing templates
        """
        if template_dir is None:
            template_dir = Path(__file__).parent.parent / "templates"
        self.template_dir = Path(template_dir)

        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape(['html', 'xml']),
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )
        self.env.filters['md_cell'] = self._md_cell_filter

    @abstractmethod
    def render(self) -> str:
        """Render the document.

        Returns:
            Rendered document content as string
        """
        pass

    def _get_template(self, template_name: str | None = None):
        """Load a Jinja2 template (``self.template_name`` by default)."""
        return self.env.get_template(template_name or self.template_name)

    def _get_metadata(self) -> dict[str, Any]:
        return {"generated_at": datetime.now().strftime("%Y-%m-%d %H:%M")}

    @staticmethod
    def _md_cell_filter(value: Any) -> str:
        """Make a value safe for a markdown table cell."""
        text = "" if value is None else str(value)
        return " ".join(text.split()).replace("|", "\\|")
