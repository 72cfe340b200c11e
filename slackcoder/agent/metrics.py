"""
用量统计模块 - 从 Agent 的最终结果消息中提取 token、费用和耗时。

回复末尾会附加一段统计信息，例如：

    ---
    📊 *Query Metrics*
    • Tokens: 1200 input + 350 output = *1550 total*
    • Cost: $0.0123 USD
    • Duration: 12.34s (API: 10.01s)
    • Turns: 3
    • Session: `session-C123-1761520471-a3f9b2`

usage 字段缺失或格式不对时按 0 处理，不会让回复失败。
"""

from dataclasses import dataclass
from typing import Any

TASK_COMPLETE_LINE = "✅ *Task Complete* - All operations finished!"


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


@dataclass
class UsageMetrics:
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0
    cost_usd: float | None = None
    duration_ms: int = 0
    duration_api_ms: int = 0
    num_turns: int = 0
    session_id: str = ""

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    @classmethod
    def from_result(cls, result: Any) -> "UsageMetrics":
        """从 ResultMessage（或具有相同属性的对象）构造。"""
        usage = getattr(result, "usage", None)
        if not isinstance(usage, dict):
            usage = {}
        cost = getattr(result, "total_cost_usd", None)
        return cls(
            input_tokens=_as_int(usage.get("input_tokens")),
            output_tokens=_as_int(usage.get("output_tokens")),
            cache_creation_input_tokens=_as_int(usage.get("cache_creation_input_tokens")),
            cache_read_input_tokens=_as_int(usage.get("cache_read_input_tokens")),
            cost_usd=float(cost) if isinstance(cost, (int, float)) else None,
            duration_ms=_as_int(getattr(result, "duration_ms", 0)),
            duration_api_ms=_as_int(getattr(result, "duration_api_ms", 0)),
            num_turns=_as_int(getattr(result, "num_turns", 0)),
            session_id=str(getattr(result, "session_id", "") or ""),
        )

    def _lines(self) -> list[str]:
        cost = f"${self.cost_usd:.4f} USD" if self.cost_usd is not None else "N/A"
        lines = [
            f"• Tokens: {self.input_tokens} input + {self.output_tokens} output = *{self.total_tokens} total*",
            f"• Cost: {cost}",
            f"• Duration: {self.duration_ms / 1000:.2f}s (API: {self.duration_api_ms / 1000:.2f}s)",
            f"• Turns: {self.num_turns}",
            f"• Session: `{self.session_id}`",
        ]
        if self.cache_creation_input_tokens > 0 or self.cache_read_input_tokens > 0:
            lines.append(
                f"• Cache: {self.cache_creation_input_tokens} created, "
                f"{self.cache_read_input_tokens} read"
            )
        return lines

    def format_footer(self) -> str:
        """附加在回复正文之后的统计段落（以分隔线开头）。"""
        body = "\n".join(self._lines())
        return f"\n\n---\n📊 *Query Metrics*\n{body}\n\n{TASK_COMPLETE_LINE}"
