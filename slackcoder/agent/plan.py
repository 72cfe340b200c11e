"""
任务计划（Plan）状态机模块 - 跟踪 Agent 通过 TodoWrite 工具上报的任务列表。

Agent 每次调用 TodoWrite 都会发送一份"完整快照"（全量替换），
本模块负责把快照合并进已有的 Plan，并推导出每个任务的耗时。

【状态流转】
  Pending → InProgress → Completed

实际中 Agent 不一定严格按顺序上报，因此合并算法必须容忍任意跳转：
- 非 InProgress → InProgress：记录 start_time
- InProgress → Completed：completion_time = now - start_time
- Pending → Completed（跳过 InProgress）：completion_time = EPSILON_DURATION
- 其他跳转（包括原样重发）：不改动计时字段

【合并规则】
任务的身份由"位置索引"决定，而不是内容。快照比已有 Plan 短时，
多出来的旧任务保留不删；Plan 只会增长或原地变化。

【Java 开发者类比】
- TaskStatus 类似于 Java 的 enum
- Task 类似于一个可变的 POJO
- Plan.update() 类似于领域对象上的 merge(...) 方法
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from slackcoder.utils.helpers import format_duration

# "完成但没有可测量耗时"的占位值（秒）
EPSILON_DURATION = 0.1


class TaskStatus(str, Enum):
    """任务状态，取值与 TodoWrite 工具的 status 字段一致。"""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass
class Task:
    """
    单个任务。

    属性:
        content: 任务描述（如 "Run tests"）
        active_form: 进行时描述（如 "Running tests"），进行中时展示
        status: 当前状态
        start_time: 进入 InProgress 的单调时钟时刻（time.monotonic()）
        completion_time: 完成耗时（秒）
    """

    content: str
    active_form: str
    status: TaskStatus = TaskStatus.PENDING
    start_time: float | None = None
    completion_time: float | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        """从 TodoWrite 的单条 todo 解析任务，字段缺失或状态非法时抛出 ValueError。"""
        if not isinstance(data, dict):
            raise ValueError(f"todo item must be an object, got {type(data).__name__}")
        try:
            content = data["content"]
            status = TaskStatus(data["status"])
        except KeyError as e:
            raise ValueError(f"todo item missing field {e}") from e
        active_form = data.get("activeForm") or data.get("active_form") or content
        return cls(content=str(content), active_form=str(active_form), status=status)

    def elapsed(self, now: float | None = None) -> float | None:
        """进行中任务已经运行的秒数；没有开始时刻时返回 None。"""
        if self.start_time is None:
            return None
        now = time.monotonic() if now is None else now
        return max(0.0, now - self.start_time)


@dataclass
class Plan:
    """有序任务列表，位置即身份。"""

    tasks: list[Task] = field(default_factory=list)

    @classmethod
    def from_tool_input(cls, tool_input: dict[str, Any]) -> "Plan":
        """
        解析 TodoWrite 的 tool_input 为一份快照。

        期望格式: {"todos": [{"content": ..., "activeForm": ..., "status": ...}, ...]}

        异常:
            ValueError: 输入格式不正确
        """
        if not isinstance(tool_input, dict):
            raise ValueError("tool input must be an object")
        todos = tool_input.get("todos")
        if not isinstance(todos, list):
            raise ValueError("tool input has no 'todos' list")
        return cls(tasks=[Task.from_dict(item) for item in todos])

    def update(self, snapshot: "Plan", now: float | None = None) -> None:
        """
        把快照合并进当前 Plan（按位置匹配）。

        参数:
            snapshot: TodoWrite 上报的完整任务列表
            now: 当前单调时刻，测试时可注入
        """
        now = time.monotonic() if now is None else now

        for i, incoming in enumerate(snapshot.tasks):
            if i >= len(self.tasks):
                task = Task(
                    content=incoming.content,
                    active_form=incoming.active_form,
                    status=incoming.status,
                )
                if incoming.status == TaskStatus.IN_PROGRESS:
                    task.start_time = now
                elif incoming.status == TaskStatus.COMPLETED:
                    task.completion_time = EPSILON_DURATION
                self.tasks.append(task)
                continue

            existing = self.tasks[i]
            old, new = existing.status, incoming.status
            if old != TaskStatus.IN_PROGRESS and new == TaskStatus.IN_PROGRESS:
                existing.start_time = now
            elif old == TaskStatus.IN_PROGRESS and new == TaskStatus.COMPLETED:
                if existing.start_time is not None:
                    existing.completion_time = max(0.0, now - existing.start_time)
            elif old == TaskStatus.PENDING and new == TaskStatus.COMPLETED:
                existing.completion_time = EPSILON_DURATION

            existing.content = incoming.content
            existing.active_form = incoming.active_form
            existing.status = new

    def reset(self) -> None:
        """清空任务列表（开启新会话时调用）。"""
        self.tasks.clear()

    @property
    def current_task(self) -> Task | None:
        """第一个 InProgress 的任务。"""
        for task in self.tasks:
            if task.status == TaskStatus.IN_PROGRESS:
                return task
        return None

    @property
    def completed_count(self) -> int:
        return sum(1 for t in self.tasks if t.status == TaskStatus.COMPLETED)

    @property
    def total_count(self) -> int:
        return len(self.tasks)

    @property
    def is_complete(self) -> bool:
        return bool(self.tasks) and all(t.status == TaskStatus.COMPLETED for t in self.tasks)

    def __len__(self) -> int:
        return len(self.tasks)


_STATUS_MARKS = {
    TaskStatus.PENDING: "[ ]",
    TaskStatus.IN_PROGRESS: "[~]",
    TaskStatus.COMPLETED: "[x]",
}


def format_plan_summary(plan: Plan) -> str:
    """
    生成纯文本的计划摘要（请求结束时写入调试日志）。

    示例:
        Progress: 1/3
        Current: Running tests
        [x] Read code (2.3s)
        [~] Run tests
        [ ] Write report
    """
    lines = [f"Progress: {plan.completed_count}/{plan.total_count}"]
    current = plan.current_task
    if current:
        lines.append(f"Current: {current.active_form}")
    for task in plan.tasks:
        line = f"{_STATUS_MARKS[task.status]} {task.content}"
        if task.status == TaskStatus.COMPLETED and task.completion_time is not None \
                and task.completion_time > EPSILON_DURATION:
            line += f" ({format_duration(task.completion_time)})"
        lines.append(line)
    return "\n".join(lines)
