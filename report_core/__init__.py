"""Report Core 顶层包。

该包提供执法报告写作助手的核心实现，
包括配置加载、领域模型、Provider 适配、检索增强（RAG）、
流式回答、外部纠错任务轮询以及报告生成流程。
"""

from report_core.agents.answer_agent import AnswerEngine, StreamingCompletionCoordinator
from report_core.agents.correction import AsyncJobPoller

__all__ = ["AnswerEngine", "AsyncJobPoller", "StreamingCompletionCoordinator"]
