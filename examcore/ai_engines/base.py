"""
Base class for grading engines
"""
import logging
import time
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class GradingEngineError(RuntimeError):
    """The grading collaborator could not produce a response"""


class GradingEngine(ABC):
    """Abstract base class for grading engines"""

    name = 'base'

    def __init__(self, api_key: str = None, model: str = None, temperature: float = 0.2, **kwargs):
        """
        Initialize grading engine

        Args:
            api_key: API key for the service (if required)
            model: Model name/identifier
            temperature: Sampling temperature for grading calls
            **kwargs: Additional configuration parameters
        """
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.config = kwargs

    def grade(self, prompt: str, instructions: str = None) -> str:
        """
        Send a grading prompt and return the raw response text

        Args:
            prompt: Questions, answers and output-format instructions
            instructions: Optional assessment-specific system instructions

        Returns:
            Raw grader text

        Raises:
            GradingEngineError: On transport failure or an empty response
        """
        start_api = time.time()
        logger.info("[AI-TIMING] Calling %s with model=%s", self.name, self.model)
        try:
            content = self._complete(prompt, instructions)
        except GradingEngineError:
            raise
        except Exception as e:
            logger.error("[AI] %s grading call failed: %s", self.name, e)
            raise GradingEngineError(f"{self.name} grading call failed: {e}") from e
        logger.info("[AI-TIMING] %s call completed: %.2fs", self.name, time.time() - start_api)

        if not content or not content.strip():
            raise GradingEngineError(f"{self.name} returned an empty response")
        return content

    @abstractmethod
    def _complete(self, prompt: str, instructions: str = None) -> str:
        """Engine-specific call returning the response text"""
        pass
