"""
Grading engines package
"""
from examcore.ai_engines.base import GradingEngine, GradingEngineError
from examcore.ai_engines.openai_engine import OpenAIEngine
from examcore.ai_engines.deepseek_engine import DeepSeekEngine
from examcore.ai_engines.ollama_engine import OllamaEngine
from examcore.ai_engines.factory import GradingEngineFactory

__all__ = [
    'GradingEngine',
    'GradingEngineError',
    'OpenAIEngine',
    'DeepSeekEngine',
    'OllamaEngine',
    'GradingEngineFactory'
]
