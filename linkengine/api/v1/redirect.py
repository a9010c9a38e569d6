import html
import json
from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from linkengine.dependencies import client_ip, get_resolver, limit_redirects
from linkengine.errors import GateKind
from linkengine.services.resolver import GateResult, RedirectTarget
from linkengine.services.visitor import RequestContext

router = APIRouter(tags=["redirect"])

GATE_STATUS = {
    GateKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    GateKind.SCHEDULED: status.HTTP_403_FORBIDDEN,
    GateKind.EXPIRED: status.HTTP_410_GONE,
    GateKind.LOCKED: status.HTTP_401_UNAUTHORIZED,
    GateKind.EXHAUSTED: status.HTTP_410_GONE,
}

PIXEL_PAGE = """<!doctype html>
<html>
<head>
<meta charset="utf-8">
<meta http-equiv="refresh" content="{delay};url={url_attr}">
<title>Redirecting...</title>
</head>
<body>
{pixel_script}
<script>setTimeout(function () {{ window.location.replace({url_js}); }}, {delay_ms});</script>
<p>Redirecting... <a href="{url_attr}">Continue</a></p>
</body>
</html>
"""


def render_pixel_page(target: RedirectTarget) -> str:
    """Interstitial that lets the tracking snippet fire before navigating."""
    return PIXEL_PAGE.format(
        delay=target.delay_seconds,
        delay_ms=int(target.delay_seconds * 1000),
        url_attr=html.escape(target.url, quote=True),
        url_js=json.dumps(target.url).replace("</", "<\\/"),
        pixel_script=target.pixel_script or "",
    )


@router.get("/{code}", dependencies=[Depends(limit_redirects)])
async def resolve_code(
    code: str,
    request: Request,
    password: Optional[str] = None,
    resolver=Depends(get_resolver)
):
    """
    Resolve a short code.

    302 to the destination, an HTML interstitial for links with a tracking
    pixel, or a JSON gate result ({kind, message}) when the link is gated.
    A resolution that cannot finish in time is answered with 503, never
    with a redirect.
    """
    context = RequestContext(
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
        referrer=request.headers.get("referer"),
        unlock_credential=password,
    )

    outcome = await resolver.resolve(code, context)

    if isinstance(outcome, GateResult):
        return JSONResponse(
            status_code=GATE_STATUS[outcome.kind],
            content={"kind": outcome.kind.value, "message": outcome.message},
            headers={"Cache-Control": "no-store"},
        )

    if outcome.delay_seconds > 0:
        return HTMLResponse(render_pixel_page(outcome), headers={"Cache-Control": "no-store"})

    return RedirectResponse(
        url=outcome.url,
        status_code=status.HTTP_302_FOUND,
        headers={"Cache-Control": "no-store"},
    )
