"""
配置加载器 - 支持YAML配置文件
"""
import os
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from secretary.core.llm_client import OPENROUTER_BASE_URL
from secretary.core.policy import AutonomyMode
from secretary.core.prompts import OUTPUT_STYLES


def load_config(config_path: str = "config.yaml") -> Dict[str, Any]:
    """加载配置文件"""
    config = get_default_config()

    if os.path.exists(config_path):
        with open(config_path, 'r', encoding='utf-8') as f:
            user_config = yaml.safe_load(f)
            if user_config:
                # 合并配置
                config = deep_merge(config, user_config)

    # 从环境变量读取API密钥
    if not config['llm'].get('api_key'):
        config['llm']['api_key'] = os.getenv('OPENROUTER_API_KEY')

    # 展开路径中的 ~
    if config['vault'].get('root'):
        config['vault']['root'] = os.path.expanduser(config['vault']['root'])

    return config


def get_default_config() -> Dict[str, Any]:
    """获取默认配置"""
    return {
        'llm': {
            'api_key': None,
            'base_url': OPENROUTER_BASE_URL,
            'model': 'openai/gpt-4o-mini',
            'available_models': [
                'openai/gpt-4o-mini',
                'openai/gpt-4o',
                'anthropic/claude-3.5-sonnet',
                'google/gemini-2.0-flash-001',
            ],
            'research_model': 'openai/gpt-4o-mini',
            'transcription_model': 'google/gemini-2.0-flash-001',
        },
        'agent': {
            'mode': 'high',
            'output_style': 'default',
            'max_turns': 50,
            'voice_auto_send': False,
        },
        'vault': {
            'root': '.',
            'context_file': 'AGENTS.md',
            'history_folder': 'Agent History',
            'routines_folder': 'Agent Routines',
        },
        'logging': {
            'level': 'WARNING',
        },
    }


def deep_merge(base: Dict, update: Dict) -> Dict:
    """深度合并两个字典"""
    result = base.copy()
    for key, value in update.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def save_config(config: Dict[str, Any], config_path: str = "config.yaml") -> None:
    """保存配置到文件"""
    with open(config_path, 'w', encoding='utf-8') as f:
        yaml.dump(config, f, default_flow_style=False, allow_unicode=True)


class AgentSettings(BaseModel):
    """Agent运行配置，只通过 Agent.update_settings() 整体生效"""

    api_key: Optional[str] = None
    base_url: str = OPENROUTER_BASE_URL
    model: str = 'openai/gpt-4o-mini'
    available_models: List[str] = Field(default_factory=list)
    research_model: str = 'openai/gpt-4o-mini'
    transcription_model: str = 'google/gemini-2.0-flash-001'
    mode: AutonomyMode = AutonomyMode.HIGH
    output_style: str = 'default'
    max_turns: int = Field(default=50, ge=0)
    voice_auto_send: bool = False
    vault_root: str = '.'
    context_file: str = 'AGENTS.md'
    history_folder: str = 'Agent History'
    routines_folder: str = 'Agent Routines'
    log_level: str = 'WARNING'

    @field_validator('output_style')
    @classmethod
    def _check_output_style(cls, value: str) -> str:
        if value not in OUTPUT_STYLES:
            raise ValueError(f"output_style must be one of {', '.join(OUTPUT_STYLES)}")
        return value

    @field_validator('log_level')
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper()

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "AgentSettings":
        """从 load_config() 的嵌套字典构建"""
        llm = config.get('llm', {})
        agent = config.get('agent', {})
        vault = config.get('vault', {})
        values = {
            'api_key': llm.get('api_key'),
            'base_url': llm.get('base_url'),
            'model': llm.get('model'),
            'available_models': llm.get('available_models'),
            'research_model': llm.get('research_model'),
            'transcription_model': llm.get('transcription_model'),
            'mode': agent.get('mode'),
            'output_style': agent.get('output_style'),
            'max_turns': agent.get('max_turns'),
            'voice_auto_send': agent.get('voice_auto_send'),
            'vault_root': vault.get('root'),
            'context_file': vault.get('context_file'),
            'history_folder': vault.get('history_folder'),
            'routines_folder': vault.get('routines_folder'),
            'log_level': config.get('logging', {}).get('level'),
        }
        return cls(**{key: value for key, value in values.items() if value is not None})

    def to_config(self) -> Dict[str, Any]:
        """转回嵌套字典（用于 save_config）"""
        return {
            'llm': {
                'api_key': self.api_key,
                'base_url': self.base_url,
                'model': self.model,
                'available_models': list(self.available_models),
                'research_model': self.research_model,
                'transcription_model': self.transcription_model,
            },
            'agent': {
                'mode': self.mode.value,
                'output_style': self.output_style,
                'max_turns': self.max_turns,
                'voice_auto_send': self.voice_auto_send,
            },
            'vault': {
                'root': self.vault_root,
                'context_file': self.context_file,
                'history_folder': self.history_folder,
                'routines_folder': self.routines_folder,
            },
            'logging': {
                'level': self.log_level,
            },
        }
