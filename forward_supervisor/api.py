"""
本地控制 API

GET  /v1/health    守护进程自身存活
GET  /v1/status    会话状态快照
POST /v1/shutdown  请求优雅关闭
"""

from typing import TYPE_CHECKING, Optional

from fastapi import Depends, FastAPI, Header, HTTPException

from . import __version__
from .models import HealthResponse, ShutdownResponse, StatusSnapshot

if TYPE_CHECKING:
    from .supervisor import Supervisor


def create_app(supervisor: "Supervisor", token: Optional[str] = None) -> FastAPI:
    """
    创建控制 API 应用

    Args:
        supervisor: 被控制的 Supervisor
        token: 设置后 status/shutdown 需要 "Authorization: Bearer <token>"
    """
    app = FastAPI(
        title="Forward Supervisor",
        version=__version__,
        description="kubectl port-forward 守护进程控制接口",
    )

    def verify_token(authorization: Optional[str] = Header(None)) -> bool:
        if not token:
            return True

        if not authorization:
            raise HTTPException(status_code=401, detail="Missing authorization header")

        parts = authorization.split()
        if len(parts) != 2 or parts[0].lower() != "bearer":
            raise HTTPException(status_code=401, detail="Invalid authorization header format")

        if parts[1] != token:
            raise HTTPException(status_code=401, detail="Invalid token")

        return True

    @app.get("/v1/health", response_model=HealthResponse)
    async def get_health():
        return HealthResponse(
            profile=supervisor.profile.name,
            sessions=len(supervisor.table),
            shutting_down=supervisor.shutting_down,
        )

    @app.get("/v1/status", response_model=StatusSnapshot)
    async def get_status(authorized: bool = Depends(verify_token)):
        return await supervisor.reporter.report()

    @app.post("/v1/shutdown", response_model=ShutdownResponse)
    async def post_shutdown(authorized: bool = Depends(verify_token)):
        already = supervisor.shutting_down
        supervisor.request_shutdown()
        message = "shutdown already in progress" if already else "shutdown requested"
        return ShutdownResponse(accepted=True, message=message)

    return app
