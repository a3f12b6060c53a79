# server.py
from typing import Optional

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from config import Settings, check_settings, load_settings
from logger import log_middleware, setup_logging
from verifier import ReCaptchaVerifier


class VerifyBody(BaseModel):
    token: Optional[str] = None


def create_app(settings: Optional[Settings] = None, verifier: Optional[ReCaptchaVerifier] = None) -> FastAPI:
    """Build the JSON verify API; refuses to start without a secret key."""
    settings = settings or load_settings()
    check_settings(settings)
    setup_logging(settings.log_level)
    verifier = verifier or ReCaptchaVerifier(settings)

    app = FastAPI()
    app.state.verifier = verifier

    # credentials stay off so "*" is a valid origin list
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(log_middleware)

    @app.get("/")
    async def root():
        return {"ok": True, "service": "verify", "action": settings.action}

    @app.get("/favicon.ico")
    async def favicon_ico():
        return Response(status_code=204)

    @app.post("/verify")
    async def verify(body: VerifyBody, request: Request):
        if not body.token:
            raise HTTPException(status_code=400, detail="Missing token")

        remote_ip = request.client.host if getattr(request, "client", None) else None
        verdict = await app.state.verifier.averify_token(
            body.token,
            hostname=request.url.hostname or "",
            remote_ip=remote_ip,
        )
        if verdict["accepted"]:
            return {"success": True, "message": ""}
        return {"success": False, "message": verifier.message}

    return app


if __name__ == "__main__":
    import uvicorn
    s = load_settings()
    uvicorn.run(create_app(s), host=s.host, port=s.port)
