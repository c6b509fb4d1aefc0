"""领域层模型与协议。

包含：
- models: 统一的 ChatMessage / ChatRequest / ChatResult 模型。
- session: 会话消息记录及 SessionStore 抽象。
- corpus: 参考片段、检索命中及 ReferenceCorpus 抽象。
- jobs: 外部 Assistant 任务的状态与消息。
- records: 罪名、要件、表单、报告分析等结构化记录。
- exceptions: 业务异常类型定义。
"""
