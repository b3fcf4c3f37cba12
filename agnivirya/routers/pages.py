"""
Shell HTML para el SPA. Debe registrarse al final: captura cualquier ruta GET
que no haya resuelto otro router.
"""
import html
import json
import logging

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import HTMLResponse

from ..config import get_settings
from ..utils import now_utc, to_iso

logger = logging.getLogger(__name__)
router = APIRouter(tags=["pages"])

HTML_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
  <head>
    <meta charset="UTF-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1.0" />
    <title>{title}</title>
    <meta name="description" content="{description}" />
  </head>
  <body>
    <div id="root"></div>
    <script>
      window.__INITIAL_STATE__ = {initial_state};
      window.__SSR_ENABLED__ = true;
      window.__APP_MODE__ = {mode};
      window.__ENVIRONMENT__ = {environment};
    </script>
    <script type="module" src="/assets/main.js"></script>
  </body>
</html>
"""


def _script_json(value) -> str:
    # Evita que un "</script>" en la URL cierre el bloque
    return json.dumps(value).replace("<", "\\u003c").replace(">", "\\u003e")


def render_shell(url: str) -> str:
    settings = get_settings()
    initial_state = {
        "currentUrl": url,
        "timestamp": to_iso(now_utc()),
        "ssr": True,
        "mode": settings.cashfree_mode,
        "environment": settings.environment,
    }
    return HTML_TEMPLATE.format(
        title=html.escape(settings.product_name),
        description=html.escape(settings.product_description),
        initial_state=_script_json(initial_state),
        mode=_script_json(settings.cashfree_mode),
        environment=_script_json(settings.environment),
    )


@router.get("/{full_path:path}", response_class=HTMLResponse, include_in_schema=False)
async def spa_shell(full_path: str, request: Request):
    # Las rutas /api desconocidas responden JSON, nunca la página
    if full_path == "api" or full_path.startswith("api/"):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="API endpoint not found")

    url = request.url.path
    if request.url.query:
        url = f"{url}?{request.url.query}"
    return HTMLResponse(render_shell(url), headers={"Cache-Control": "no-cache"})
