"""
LLM客户端 - OpenRouter 的 OpenAI 兼容接口
"""
import base64
import logging
from typing import Any, Dict, List, Optional

from openai import APIConnectionError, APIStatusError, AsyncOpenAI

from .errors import ConfigurationError, TransportError
from .prompts import COMPACTION_PROMPT, COMPACTION_REQUEST, TRANSCRIPTION_PROMPT
from .types import Turn, to_json, turns_to_dicts

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_HEADERS = {
    "HTTP-Referer": "https://opensecretary.com",
    "X-Title": "OpenSecretary",
}
MISSING_KEY_MESSAGE = "OpenRouter API key is not set."


class LLMClient:
    """补全服务封装: complete(turns) -> text"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "openai/gpt-4o-mini",
        base_url: str = OPENROUTER_BASE_URL
    ):
        self.api_key = api_key or ""
        self.model = model
        self.base_url = base_url
        self._client: Optional[AsyncOpenAI] = None

    @property
    def client(self) -> AsyncOpenAI:
        """按需创建 AsyncOpenAI，没有密钥时拒绝"""
        if not self.api_key:
            raise ConfigurationError(MISSING_KEY_MESSAGE)
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                default_headers=DEFAULT_HEADERS
            )
        return self._client

    def update_settings(self, api_key: Optional[str], model: str, base_url: Optional[str] = None) -> None:
        """更新凭据、模型和地址，凭据或地址变化时旧连接作废"""
        base_url = base_url or self.base_url
        if (api_key or "") != self.api_key or base_url != self.base_url:
            self._client = None
        self.api_key = api_key or ""
        self.model = model
        self.base_url = base_url

    async def close(self) -> None:
        """关闭底层连接"""
        if self._client is not None:
            await self._client.close()
            self._client = None

    def with_model(self, model: str) -> "LLMClient":
        """复用凭据，换一个模型（不影响当前实例）"""
        return LLMClient(api_key=self.api_key, model=model, base_url=self.base_url)

    async def _create(self, model: str, messages: List[Dict[str, Any]]) -> str:
        client = self.client
        try:
            response = await client.chat.completions.create(
                model=model,
                messages=messages
            )
        except APIStatusError as e:
            logger.error("Completion request failed: %s", e)
            raise TransportError(f"OpenRouter API Error: {e.status_code} - {e.message}") from e
        except APIConnectionError as e:
            logger.error("Completion request failed: %s", e)
            raise TransportError(f"OpenRouter connection error: {e}") from e

        if not response.choices:
            raise TransportError("No response from OpenRouter.")
        return response.choices[0].message.content or ""

    async def complete(self, turns: List[Turn]) -> str:
        """生成一次非流式回复"""
        return await self._create(self.model, turns_to_dicts(turns))

    async def transcribe(self, audio: bytes, fmt: str, model: str) -> str:
        """
        语音转文字

        Args:
            audio: 原始音频字节
            fmt: wav / mp3 / ogg / webm
            model: 转写模型
        """
        if not self.api_key:
            raise ConfigurationError(MISSING_KEY_MESSAGE)

        messages = [
            {"role": "system", "content": TRANSCRIPTION_PROMPT},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": "Transcribe this audio:"},
                    {
                        "type": "input_audio",
                        "input_audio": {
                            "data": base64.b64encode(audio).decode("ascii"),
                            "format": fmt
                        }
                    }
                ]
            }
        ]
        text = await self._create(model, messages)
        return text.strip()


class ConversationCompactor:
    """会话压缩器 - 把整段历史总结成一段文字"""

    def __init__(self, llm_client: LLMClient):
        self.llm_client = llm_client

    async def summarize(self, turns: List[Turn]) -> str:
        messages = [
            Turn.system(COMPACTION_PROMPT),
            Turn.user(COMPACTION_REQUEST + to_json(turns_to_dicts(turns)))
        ]
        return await self.llm_client.complete(messages)
