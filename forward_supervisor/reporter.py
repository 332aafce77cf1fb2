"""
状态快照

对进程表做只读快照，并额外探测每个会话的本地端口：
- healthy: 进程存活且端口在监听
- degraded: 进程存活但端口未监听
- dead: 进程不存活

不修改任何会话状态，发现的不一致留给下一轮巡检处理。
"""

import asyncio
from datetime import datetime, timezone

from .models import Health, Session, SessionStatus, StatusSnapshot
from .ports import is_port_listening
from .process import is_alive
from .table import ProcessTable


class StatusReporter:
    def __init__(
        self,
        table: ProcessTable,
        profile_name: str,
        host: str = "127.0.0.1",
        probe_timeout: float = 0.5,
    ):
        self.table = table
        self.profile_name = profile_name
        self.host = host
        self.probe_timeout = probe_timeout

    async def report(self) -> StatusSnapshot:
        sessions = self.table.snapshot()
        statuses = await asyncio.gather(*(self._status(s) for s in sessions))
        return StatusSnapshot(
            profile=self.profile_name,
            generated_at=datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            sessions=list(statuses),
        )

    async def _status(self, session: Session) -> SessionStatus:
        if not is_alive(session.process):
            health = Health.DEAD
        elif await is_port_listening(self.host, session.spec.local_port, self.probe_timeout):
            health = Health.HEALTHY
        else:
            health = Health.DEGRADED

        return SessionStatus(
            name=session.name,
            resource=session.spec.resource,
            local_port=session.spec.local_port,
            remote_port=session.spec.remote_port,
            pid=session.pid,
            state=session.state,
            health=health,
            restart_count=session.restart_count,
            last_error=session.last_error,
            started_at=session.started_at,
        )


def render_snapshot(snapshot: StatusSnapshot) -> str:
    """渲染为终端表格"""
    lines = [f"Profile: {snapshot.profile}  ({snapshot.generated_at})"]
    if not snapshot.sessions:
        lines.append("  no active port-forwards")
        return "\n".join(lines)

    header = f"  {'NAME':<20} {'RESOURCE':<32} {'PORTS':<13} {'PID':>7}  {'STATE':<10} {'HEALTH':<9} RESTARTS"
    lines.append(header)
    for s in snapshot.sessions:
        ports = f"{s.local_port}:{s.remote_port}"
        pid = str(s.pid) if s.pid is not None else "-"
        lines.append(
            f"  {s.name:<20} {s.resource:<32} {ports:<13} {pid:>7}  "
            f"{s.state.value:<10} {s.health.value:<9} {s.restart_count}"
        )
        if s.last_error and s.health != Health.HEALTHY:
            lines.append(f"      last error: {s.last_error}")

    lines.append(
        f"  healthy={snapshot.count(Health.HEALTHY)} "
        f"degraded={snapshot.count(Health.DEGRADED)} "
        f"dead={snapshot.count(Health.DEAD)}"
    )
    return "\n".join(lines)
