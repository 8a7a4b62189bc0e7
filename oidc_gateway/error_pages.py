"""
Error responses for the login flow and the proxy.

Browsers get a small HTML page, API clients an RFC 7807 problem document.
Operators can send every failure to their own page instead via
ERROR_PAGE_REDIRECT_URL, or render the HTML page from their own Jinja2
template file via ERROR_PAGE_TEMPLATE_PATH.
"""

import html
import logging
import os
from functools import lru_cache
from typing import Optional

from fastapi import Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from jinja2 import Environment, FileSystemLoader, TemplateError

from oidc_gateway.models import ProblemDetails
from oidc_gateway.utils.urls import is_html_request

logger = logging.getLogger(__name__)

PROBLEM_MEDIA_TYPE = "application/json+problem"


class ErrorPageData:
    """What went wrong, independent of how it is rendered."""

    def __init__(self, title: str, description: str, status_code: int = 400, primary_description: str = ""):
        self.title = title
        self.description = description
        self.status_code = status_code
        self.primary_description = primary_description or title


def write_error(
    request: Request,
    data: ErrorPageData,
    redirect_to: Optional[str] = None,
    template_path: Optional[str] = None,
) -> Response:
    """
    Build the error response best suited to the client.

    Args:
        request: Request that failed
        data: Error to report
        redirect_to: Configured error page URL; takes precedence when set
        template_path: Jinja2 template file for the HTML page

    Returns:
        302 redirect, HTML page or problem document
    """
    logger.info(
        "Returning error response",
        extra={"status_code": data.status_code, "title": data.title, "path": request.url.path},
    )

    if redirect_to:
        return RedirectResponse(url=redirect_to, status_code=302)

    if is_html_request(request):
        return HTMLResponse(content=render_error_page(data, template_path), status_code=data.status_code)

    return write_problem_detail(data)


def write_problem_detail(data: ErrorPageData) -> JSONResponse:
    problem = ProblemDetails(
        title=data.title,
        status=data.status_code,
        detail=data.description,
    )
    return JSONResponse(
        content=problem.model_dump(exclude_none=True),
        status_code=data.status_code,
        media_type=PROBLEM_MEDIA_TYPE,
    )


# =============================================================================
# Custom Templates
# =============================================================================

@lru_cache()
def _template_environment(directory: str) -> Environment:
    # Templates are reloaded when the file changes on disk
    return Environment(loader=FileSystemLoader(directory), autoescape=True)


def render_template(data: ErrorPageData, template_path: str) -> str:
    """
    Render an operator-supplied Jinja2 template file.

    The template sees ``status_code``, ``title``, ``primary_description``
    and ``description``. Values are autoescaped.

    Raises:
        jinja2.TemplateError: If the template is missing or invalid
    """
    directory, name = os.path.split(os.path.abspath(template_path))
    template = _template_environment(directory).get_template(name)
    return template.render(
        status_code=data.status_code,
        title=data.title,
        primary_description=data.primary_description,
        description=data.description,
    )


def render_error_page(data: ErrorPageData, template_path: Optional[str] = None) -> str:
    """
    Render the HTML error page, from ``template_path`` when configured.

    A broken or missing template is logged and the built-in page is used.
    """
    if template_path:
        try:
            return render_template(data, template_path)
        except (TemplateError, OSError) as e:
            logger.error(
                "Error page template failed, using built-in page",
                extra={"template_path": template_path, "error_type": type(e).__name__},
            )
    return render_page(data)


# =============================================================================
# HTML Response Template
# =============================================================================

def render_page(data: ErrorPageData) -> str:
    """
    Render the HTML error page. All values are escaped.
    """
    title = html.escape(data.title)
    primary = html.escape(data.primary_description)
    description = html.escape(data.description)

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title}</title>
    <style>
        * {{ margin: 0; padding: 0; box-sizing: border-box; }}
        body {{
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Helvetica, Arial, sans-serif;
            background: #f3f4f6;
            min-height: 100vh;
            display: flex;
            align-items: center;
            justify-content: center;
            padding: 20px;
        }}
        .container {{
            background: white;
            border-radius: 12px;
            padding: 40px;
            max-width: 500px;
            width: 100%;
            box-shadow: 0 10px 40px rgba(0,0,0,0.1);
            text-align: center;
        }}
        .status {{
            color: #ef4444;
            font-size: 48px;
            font-weight: bold;
            margin-bottom: 16px;
        }}
        h1 {{
            color: #1f2937;
            font-size: 24px;
            margin-bottom: 16px;
        }}
        .message {{
            color: #6b7280;
            font-size: 16px;
            line-height: 1.6;
        }}
    </style>
</head>
<body>
    <div class="container">
        <div class="status">{data.status_code}</div>
        <h1>{primary}</h1>
        <p class="message">{description}</p>
    </div>
</body>
</html>
"""
