"""HTML email templates with `{{KEY}}` placeholders."""

from functools import lru_cache
from pathlib import Path

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"


class EmailTemplates:
    """Loads templates from `templates_dir` and fills in their placeholders."""

    def __init__(self, templates_dir: Path = TEMPLATES_DIR):
        self.templates_dir = templates_dir
        self._read = lru_cache(maxsize=16)(self._read_file)

    def _read_file(self, name: str) -> str:
        path = self.templates_dir / f"{name}.html"
        if not path.is_file():
            raise FileNotFoundError(f"Template '{name}' not found in {self.templates_dir}")
        return path.read_text(encoding="utf-8")

    def render(self, name: str, **values: object) -> str:
        """Render template `name`, replacing `{{KEY}}` with `values[KEY]`.

        Raises:
            FileNotFoundError: If there is no `<name>.html` in the templates directory.
        """
        rendered = self._read(name)
        for key, value in values.items():
            rendered = rendered.replace("{{" + key + "}}", str(value))
        return rendered

    def login_code(self, code: str, expires_in_minutes: int) -> str:
        return self.render("login_code_email", CODE=code, EXPIRES_IN=expires_in_minutes)
