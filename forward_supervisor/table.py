"""
进程表

规则名 -> Session 的唯一映射。写入方只有 SessionLauncher 与 HealthMonitor，
二者由 Supervisor 的控制锁串行化；StatusReporter 只通过 snapshot() 读取。
"""

import dataclasses
from typing import Dict, Iterator, List, Optional

from .models import Session, SessionState


class ProcessTable:
    def __init__(self):
        self._sessions: Dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, name: str) -> bool:
        return name in self._sessions

    def __iter__(self) -> Iterator[Session]:
        return iter(list(self._sessions.values()))

    def get(self, name: str) -> Optional[Session]:
        return self._sessions.get(name)

    def put(self, session: Session):
        self._sessions[session.name] = session

    def set_state(self, name: str, state: SessionState, last_error: Optional[str] = None) -> Session:
        session = self._sessions[name]
        session.state = state
        if last_error is not None:
            session.last_error = last_error
        return session

    def remove(self, name: str) -> Optional[Session]:
        return self._sessions.pop(name, None)

    def clear(self):
        self._sessions.clear()

    def sessions(self) -> List[Session]:
        """当前会话列表（按插入顺序）"""
        return list(self._sessions.values())

    def by_state(self, *states: SessionState) -> List[Session]:
        return [s for s in self._sessions.values() if s.state in states]

    def snapshot(self) -> List[Session]:
        """
        时间点快照

        返回浅拷贝，调用方修改拷贝不会影响进程表；进程句柄仍共享，只可用于只读探测。
        """
        return [dataclasses.replace(s) for s in self._sessions.values()]
