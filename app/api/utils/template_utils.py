from datetime import datetime
from functools import lru_cache
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from app.api.core.config import settings

TEMPLATE_DIR = Path(__file__).parent.parent / "core" / "dependencies" / "email" / "templates"


@lru_cache(maxsize=1)
def get_template_env() -> Environment:
    """Build the shared Jinja environment for email templates."""
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape(["html", "xml"]),
    )
    env.globals["APP_NAME"] = settings.APP_NAME
    env.globals["BASE_URL"] = settings.BASE_URL
    env.globals["current_year"] = datetime.now().year
    return env


def render_template(template_name: str, context: dict) -> str:
    """
    Render an email template with the given context.

    Args:
        template_name: Name of the template file (e.g., 'waitlist_confirmation.html')
        context: Dictionary of variables to pass to the template

    Returns:
        Rendered HTML string
    """
    template = get_template_env().get_template(template_name)
    return template.render(**context)
