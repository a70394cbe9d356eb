"""
Ollama Engine implementation (for local models)
"""
import os
import requests
from examcore.ai_engines.base import GradingEngine
from examcore.services.prompt_builder import GRADING_SYSTEM_PROMPT


class OllamaEngine(GradingEngine):
    """Ollama implementation for local LLM models"""

    name = 'ollama'

    def __init__(self, api_key: str = None, model: str = None, **kwargs):
        super().__init__(api_key, model, **kwargs)
        self.base_url = kwargs.get('base_url') or os.getenv('OLLAMA_BASE_URL', 'http://localhost:11434')
        self.model = model or 'llama2'

    def _complete(self, prompt: str, instructions: str = None) -> str:
        system = GRADING_SYSTEM_PROMPT
        if instructions:
            system = f"{system}\n\n{instructions}"

        response = requests.post(
            f'{self.base_url}/api/generate',
            json={
                'model': self.model,
                'system': system,
                'prompt': prompt,
                'stream': False,
                'options': {
                    'temperature': self.temperature
                }
            },
            timeout=300
        )
        response.raise_for_status()
        return response.json()['response']
