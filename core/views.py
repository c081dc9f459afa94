from django.db import DatabaseError
from django.http import HttpResponse, JsonResponse
from django.utils import timezone
from loguru import logger

from videogate.models import AccessGrant, Asset
from videogate.services import get_orchestrator

HOME_PAGE_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8" />
<meta name="viewport" content="width=device-width, initial-scale=1" />
<title>VideoGate</title>
<style>
    body {
        margin: 0;
        min-height: 100vh;
        display: grid;
        place-items: center;
        font-family: "Inter", -apple-system, BlinkMacSystemFont, "Segoe UI", sans-serif;
        color: #111827;
        background: #f9fafb;
    }
    main {
        width: min(880px, 92vw);
        padding: 2.5rem 3rem;
        border-radius: 24px;
        background: #ffffff;
        border: 1px solid #e5e7eb;
    }
    h1 { margin: 0 0 0.75rem; font-size: 2.75rem; }
    ul { padding-left: 1.1rem; line-height: 1.9; }
    code { background: #eef2ff; padding: 0.2rem 0.45rem; border-radius: 6px; }
</style>
</head>
<body>
    <main>
        <h1>VideoGate</h1>
        <p>
            Pay-per-view access for video assets. Unpaid requests receive an HTTP 402
            challenge; verified payments are recorded locally and on-chain.
        </p>
        <ul>
            <li><code>GET /assets/&lt;id&gt;/access</code> stream descriptor or 402 challenge</li>
            <li><code>POST /payments/verify</code> submit a payment receipt</li>
            <li><code>POST /payments/webhook</code> provider payment notifications</li>
        </ul>
    </main>
</body>
</html>"""


def home(request):
    return HttpResponse(HOME_PAGE_HTML, content_type="text/html; charset=utf-8")


def health(request):
    orchestrator = get_orchestrator()
    try:
        database = {
            "assets": Asset.objects.count(),
            "accessGrants": AccessGrant.objects.count(),
        }
        healthy = True
    except DatabaseError as exc:
        logger.error("Health check could not reach the database: {}", exc)
        database = None
        healthy = False

    return JsonResponse(
        {
            "status": "healthy" if healthy else "degraded",
            "timestamp": timezone.now().isoformat(),
            "services": {
                "ledger": orchestrator.ledger.get_network_info(),
                "payments": orchestrator.verifier.get_config(),
                "storage": orchestrator.storage.get_config(),
            },
            "database": database,
        },
        status=200 if healthy else 503,
    )
