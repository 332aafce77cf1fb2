"""
Forward Supervisor - kubectl 端口转发守护进程

负责：
- 按 profile 为每条转发规则启动一个 port-forward 会话
- 每 5s 巡检会话存活，挂掉的会话立即重启
- 按需输出会话健康快照（信号或本地控制 API）
- 收到终止请求时先优雅终止、超时后强制结束所有会话
"""

__version__ = "1.0.0"
