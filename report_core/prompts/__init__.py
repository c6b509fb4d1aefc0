"""系统提示词加载工具。

按名称与语言(locale) 从 prompts/<locale> 目录读取 system prompt 文本。
提示词内容视为不透明配置；"{narrative_structure}" 占位符会被替换为
共享的报告结构说明，其他花括号原样保留（提示词里含 JSON 示例）。
"""

from pathlib import Path


PROMPTS_DIR = Path(__file__).resolve().parent

ANSWER = "answer_system"
CRIME_ELEMENT = "crime_element_system"
VALIDATE = "validate_system"
IMPROVE = "improve_system"
EXAMPLE = "example_system"

_SHARED_PLACEHOLDER = "{narrative_structure}"


def load_system_prompt(name: str, locale: str = "en") -> str:
    """根据提示词名称和语言加载系统提示词文本。"""

    base = PROMPTS_DIR / locale
    text = (base / f"{name}.md").read_text(encoding="utf-8").strip()
    if _SHARED_PLACEHOLDER in text:
        shared = (base / "narrative_structure.md").read_text(encoding="utf-8").strip()
        text = text.replace(_SHARED_PLACEHOLDER, shared)
    return text
