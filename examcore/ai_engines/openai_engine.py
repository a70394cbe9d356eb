"""
OpenAI Engine implementation
"""
import os
from openai import OpenAI
from examcore.ai_engines.base import GradingEngine
from examcore.services.prompt_builder import GRADING_SYSTEM_PROMPT


class OpenAIEngine(GradingEngine):
    """OpenAI implementation of the grading engine"""

    name = 'openai'

    def __init__(self, api_key: str = None, model: str = None, client=None, **kwargs):
        super().__init__(api_key, model, **kwargs)
        self.api_key = api_key or os.getenv('OPENAI_API_KEY')
        self.model = model or os.getenv('ACTIVE_AI_MODEL', 'gpt-4')
        self.client = client or OpenAI(api_key=self.api_key)

    def _complete(self, prompt: str, instructions: str = None) -> str:
        system = GRADING_SYSTEM_PROMPT
        if instructions:
            system = f"{system}\n\n{instructions}"

        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt}
            ],
            temperature=self.temperature
        )
        return response.choices[0].message.content
