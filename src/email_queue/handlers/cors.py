"""
Module: cors.py
Description: Permissive cross-origin headers for the HTTP trigger.

Preflight requests are answered directly; every other response gets
the same headers added on the way out. Starlette's CORSMiddleware only
acts on requests carrying an Origin header, and answers OPTIONS only
when Access-Control-Request-Method is present, so it is not used here.
"""

from fastapi import Request, Response

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
}


async def cors_middleware(request: Request, call_next) -> Response:
    if request.method == "OPTIONS":
        return Response(status_code=200, headers=CORS_HEADERS)

    response = await call_next(request)
    for name, value in CORS_HEADERS.items():
        response.headers.setdefault(name, value)
    return response
