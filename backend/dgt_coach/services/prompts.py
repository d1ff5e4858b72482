"""
DGT Coach Backend: System Instructions & Prompt Assembly
==========================================================

What:  The natural-language contracts sent to Gemini, and build_prompt(),
       which turns a classified request into an UpstreamPrompt.
Who:   Called by AnalysisService once per request.

Contracts:
    INITIAL_ANALYSIS_PROMPT   image mode, strict JSON array of analysis records
    LEGACY_TAGGED_PROMPT      image mode under RESPONSE_CONTRACT=legacy_tags
    FOLLOW_UP_PROMPT          follow-up mode, free Chinese text
    TEST_GENERATION_PROMPT    test mode, strict JSON array of 3 questions

The JSON keys named in these instructions are the keys the client app reads.
Changing one means changing the app.
"""

import base64
import binascii
import json
import re
from typing import List

from dgt_coach.config import ResponseContract
from dgt_coach.exceptions import InvalidRequestError
from dgt_coach.schemas.analysis import AnalysisMode, AnalysisRequest
from dgt_coach.services.llm_base import ContentPart, UpstreamPrompt

IMAGE_MIME_TYPE = "image/jpeg"
TOPIC_DELIMITER = ", "

# Matches "data:image/png;base64," style prefixes some clients leave on
_DATA_URL_PREFIX = re.compile(r"^data:[\w/+.-]+;base64,", re.IGNORECASE)


# ══════════════════════════════════════════════════════════════════════════
# System Instructions
# ══════════════════════════════════════════════════════════════════════════

INITIAL_ANALYSIS_PROMPT = """
**身份:** 你是一位极其严谨、注重事实的西班牙驾照理论考试AI专家。你的首要任务是提供100%基于西班牙现行官方交通法规的、准确无误的答案。
**任务:** 用户上传了一张练习题图片，图片中可能包含一道或多道题目。你的任务是识别出图片中的每一道独立题目，并对它们分别进行分析。
**核心分析流程:**
1.  **识别所有题目:** 遍历图片，找出所有的问题区域。
2.  **逐一分析:** 对你识别出的每一道题，都独立执行以下操作：
    a. **文本提取:** 从该题目区域提取问题和所有选项的西班牙语文本。
    b. **法规回忆与核查:** 在你的知识库中，定位到与该问题相关的、最具体的西班牙交通法规，并完成内部核查。
    c. **应用与解答:** 将核查过的法规应用到该问题上，得出唯一的正确答案。
    d. **生成结构化解释:** 根据分析，生成包含翻译、答案、法规解释、知识扩展和关键词汇的输出。
**绝对规则:**
* 你的判断必须完全基于法规，而不是图片上可能存在的任何用户标记。
* **忽略不完整题目:** 如果图片中的某道题目明显被截断或不完整（例如，问题文本或部分选项缺失），你必须忽略该题，不要将其包含在你的分析结果中。
**输出格式 (必须是严格的JSON数组):**
你的最终回答必须是一个包含所有题目分析结果的JSON数组。即使只有一道题，也必须放在数组中。每个分析对象都必须包含以下键：
[
  {
    "knowledgePoint": "...",
    "translation": "...",
    "correctAnswer": "...",
    "explanation": "...",
    "relatedPoints": "...",
    "keywords": "..."
  }
]"""

LEGACY_TAGGED_PROMPT = """
**身份:** 你是一位极其严谨的西班牙驾照理论考试AI专家，答案必须100%基于西班牙现行官方交通法规。
**任务:** 用户上传了一张练习题图片。请提取题目和选项的西班牙语文本，根据法规得出唯一的正确答案，并给出中文解释。
**输出格式 (必须严格使用以下标签，每个标签都必须出现且只出现一次):**
[KNOWLEDGE]考点名称[/KNOWLEDGE]
[TRANSLATION]题目和选项的中文翻译[/TRANSLATION]
[ANSWER]正确选项的字母[/ANSWER]
[EXPLANATION]基于法规的详细解释[/EXPLANATION]
[RELATED]相关知识扩展[/RELATED]
[KEYWORDS]关键西班牙语词汇及中文释义[/KEYWORDS]"""

FOLLOW_UP_PROMPT = """
**身份:** 你是一位乐于助人的西班牙驾考AI助教。你的回答必须100%基于西班牙官方交通法规。
**任务:** 用户对你之前的分析提出了一个后续问题。你需要根据之前提供的分析内容（上下文）和你的交通法规知识，用友好、清晰的中文来回答用户的问题。"""

TEST_GENERATION_PROMPT = """
**身份:** 你是一位西班牙驾考理论出题专家。
**任务:** 根据用户提供的一系列学习过的“考点标签”，为他们量身定制一套包含3道题的复习测试。
**输出格式 (必须是严格的JSON数组):**
[
  {
    "question_es": "...",
    "question_zh": "...",
    "options": ["A. ...", "B. ...", "C. ..."],
    "correct_answer": "A",
    "explanation": "..."
  }
]"""

IMAGE_USER_INSTRUCTION = "请严格按照你的分析流程和输出格式进行操作。"


# ══════════════════════════════════════════════════════════════════════════
# Prompt Assembly
# ══════════════════════════════════════════════════════════════════════════

def decode_image(image: str) -> bytes:
    """
    Decode the client's base64 photo into raw bytes for an inline part.

    Accepts a bare base64 string or a data URL, tolerates embedded
    whitespace and missing padding.

    Raises:
        InvalidRequestError: The string is not base64 or decodes to nothing.
    """
    payload = _DATA_URL_PREFIX.sub("", image.strip(), count=1)
    payload = "".join(payload.split())
    payload += "=" * (-len(payload) % 4)
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidRequestError(
            message="Invalid request: `image` must be a base64-encoded JPEG.",
            field="image",
        )
    if not data:
        raise InvalidRequestError(
            message="Invalid request: `image` decodes to an empty file.",
            field="image",
        )
    return data


def build_prompt(
    request: AnalysisRequest,
    mode: AnalysisMode,
    contract: ResponseContract = ResponseContract.JSON,
) -> UpstreamPrompt:
    """
    Pick the system instruction for `mode` and build the user-turn parts.

    Only reads from `request`; the caller's context object is serialised,
    never modified.

    Args:
        request:  Validated request body.
        mode:     Result of classify_request().
        contract: Response contract for image mode.

    Returns:
        UpstreamPrompt ready for LLMService.generate().
    """
    if mode is AnalysisMode.IMAGE:
        parts: List[ContentPart] = [
            ContentPart.from_text(IMAGE_USER_INSTRUCTION),
            ContentPart.from_blob(IMAGE_MIME_TYPE, decode_image(request.image)),
        ]
        if contract is ResponseContract.LEGACY_TAGS:
            return UpstreamPrompt(LEGACY_TAGGED_PROMPT, parts, json_output=False)
        return UpstreamPrompt(INITIAL_ANALYSIS_PROMPT, parts, json_output=True)

    if mode is AnalysisMode.FOLLOW_UP:
        snapshot = json.dumps(request.context, ensure_ascii=False, indent=2)
        parts = [
            ContentPart.from_text(f"这是之前的分析上下文：\n{snapshot}"),
            ContentPart.from_text(f"现在，请回答用户基于以上内容提出的问题：\n\"{request.question}\""),
        ]
        return UpstreamPrompt(FOLLOW_UP_PROMPT, parts, json_output=False)

    if mode is AnalysisMode.TEST_GENERATION:
        topics = TOPIC_DELIMITER.join(request.test_topics)
        parts = [ContentPart.from_text(f"请根据以下考点出题: {topics}")]
        return UpstreamPrompt(TEST_GENERATION_PROMPT, parts, json_output=True)

    raise InvalidRequestError(message=f"Unsupported analysis mode: {mode}")
