# core/template_engine.py
"""
Template Engine for Exchange Rate Alert Emails
Renders the alert subject, HTML body and plain-text body from Jinja2 templates
with autoescaping, strict undefined handling and optional CSS inlining
"""

import re
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape
from jinja2.exceptions import TemplateError, UndefinedError, TemplateSyntaxError
import premailer
from bs4 import BeautifulSoup

from core.exceptions import TemplateRenderingError

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parent.parent / 'templates' / 'email'
DEFAULT_SUBJECT = 'BZ ↔ MX Exchange Rate Alert'


@dataclass
class RenderedEmail:
    """Result of rendering the alert email"""
    subject: str
    html: str
    text: str
    render_time_ms: float


class AlertTemplateEngine:
    """
    Jinja2 renderer for rate alert emails

    Templates live in templates/email: rate_alert.html is required,
    rate_alert.txt is optional and falls back to a text conversion of the HTML.
    """

    HTML_TEMPLATE = 'rate_alert.html'
    TEXT_TEMPLATE = 'rate_alert.txt'

    def __init__(self,
                 template_dir: Optional[Path] = None,
                 subject_template: str = DEFAULT_SUBJECT,
                 enable_css_inlining: bool = True):
        """
        Initialize the alert template engine

        Args:
            template_dir: Directory holding the email templates
            subject_template: Jinja2 string used for the subject line
            enable_css_inlining: Whether to inline CSS for email clients
        """
        self.template_dir = Path(template_dir or DEFAULT_TEMPLATE_DIR)
        self.subject_template = subject_template
        self.enable_css_inlining = enable_css_inlining

        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape(['html', 'xml']),
            undefined=StrictUndefined,  # Fail on undefined variables
            trim_blocks=True,
            lstrip_blocks=True
        )

        logger.debug(f"AlertTemplateEngine initialized from {self.template_dir}")

    def render(self, variables: Dict[str, Any]) -> RenderedEmail:
        """
        Render subject, HTML and text for one alert

        Raises:
            TemplateRenderingError: missing variable or broken template
        """
        start_time = datetime.now()

        try:
            subject = self.env.from_string(self.subject_template).render(**variables).strip()
            html = self.env.get_template(self.HTML_TEMPLATE).render(**variables)

            if self._has_template(self.TEXT_TEMPLATE):
                text = self.env.get_template(self.TEXT_TEMPLATE).render(**variables).strip()
            else:
                text = self._html_to_text(html)
        except UndefinedError as e:
            raise TemplateRenderingError(f"Template variable error: {str(e)}") from e
        except TemplateSyntaxError as e:
            raise TemplateRenderingError(f"Template syntax error: {str(e)}") from e
        except TemplateError as e:
            raise TemplateRenderingError(f"Template rendering failed: {str(e)}") from e

        if self.enable_css_inlining:
            html = self._inline_css(html)

        render_time_ms = (datetime.now() - start_time).total_seconds() * 1000
        logger.debug(f"Alert email rendered in {render_time_ms:.2f}ms")

        return RenderedEmail(subject=subject, html=html, text=text, render_time_ms=render_time_ms)

    def _has_template(self, name: str) -> bool:
        return (self.template_dir / name).is_file()

    def _inline_css(self, html_content: str) -> str:
        """
        Inline CSS styles for better email client compatibility
        """
        try:
            p = premailer.Premailer(
                html_content,
                remove_classes=False,
                keep_style_tags=True,
                strip_important=False,
                external_styles=None  # Don't fetch external stylesheets
            )
            return p.transform()
        except Exception as e:
            logger.warning(f"CSS inlining failed: {str(e)}")
            return html_content

    def _html_to_text(self, html_content: str) -> str:
        """
        Convert HTML to plain text for the text/plain part
        """
        if not html_content:
            return ""

        soup = BeautifulSoup(html_content, 'html.parser')

        for tag in soup(['style', 'script', 'head']):
            tag.decompose()

        for br in soup.find_all('br'):
            br.replace_with('\n')

        for p in soup.find_all(['p', 'h1', 'h2', 'h3', 'tr']):
            p.insert_after('\n')

        text = soup.get_text()
        text = re.sub(r'[ \t]+', ' ', text)
        text = re.sub(r'\n\s*\n+', '\n\n', text)
        return text.strip()
