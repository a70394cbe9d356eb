"""
DeepSeek Engine implementation
"""
import os
import requests
from examcore.ai_engines.base import GradingEngine
from examcore.services.prompt_builder import GRADING_SYSTEM_PROMPT


class DeepSeekEngine(GradingEngine):
    """DeepSeek implementation of the grading engine (compatible with OpenAI API)"""

    name = 'deepseek'

    def __init__(self, api_key: str = None, model: str = None, **kwargs):
        super().__init__(api_key, model, **kwargs)
        self.api_key = api_key or os.getenv('DEEPSEEK_API_KEY')
        self.model = model or 'deepseek-chat'
        self.base_url = kwargs.get('base_url', 'https://api.deepseek.com/v1')

    def _complete(self, prompt: str, instructions: str = None) -> str:
        system = GRADING_SYSTEM_PROMPT
        if instructions:
            system = f"{system}\n\n{instructions}"

        headers = {
            'Authorization': f'Bearer {self.api_key}',
            'Content-Type': 'application/json'
        }

        data = {
            'model': self.model,
            'messages': [
                {'role': 'system', 'content': system},
                {'role': 'user', 'content': prompt}
            ],
            'temperature': self.temperature
        }

        response = requests.post(
            f'{self.base_url}/chat/completions',
            headers=headers,
            json=data,
            timeout=120  # grading prompts are long
        )
        response.raise_for_status()
        return response.json()['choices'][0]['message']['content']
