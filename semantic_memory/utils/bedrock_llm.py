"""
Amazon Bedrock chat model wrapper with error handling.
"""

import asyncio
import random
import time
from typing import Any, Dict, List, Optional, Tuple

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .config import BedrockLLMConfig
from .errors import ProviderError
from .logging_config import get_logger

logger = get_logger(__name__)


class BedrockLLMError(ProviderError):
    """Custom exception for Bedrock LLM errors."""
    pass


def to_converse_messages(messages: List[Dict[str, str]]) -> Tuple[List[Dict[str, Any]], str]:
    """Split plain {role, content} messages into Converse messages and a system prompt.

    Args:
        messages: Ordered chat messages with 'role' and 'content' keys

    Returns:
        Tuple of (converse_messages, system_prompt)
    """
    system_parts = []
    converse_messages = []

    for msg in messages:
        role = msg.get('role')
        content = msg.get('content', '')
        if role == 'system':
            system_parts.append(content)
        elif role in ('user', 'assistant'):
            converse_messages.append({'role': role, 'content': [{'text': content}]})
        else:
            logger.warning(f'Ignoring chat message with unknown role: {role}')

    return converse_messages, '\n\n'.join(system_parts)


class BedrockLLM:
    """Amazon Bedrock chat model client used for answers and fact extraction."""

    def __init__(self, config: BedrockLLMConfig):
        """
        Initialize Bedrock LLM client.

        Args:
            config: BedrockLLMConfig instance with connection parameters
        """
        self.config = config
        self.model_id = config.model_id

        # Create Bedrock runtime client with timeout configuration
        self.bedrock_runtime = boto3.client(
            'bedrock-runtime',
            region_name=config.region,
            config=BotoConfig(
                connect_timeout=600,
                read_timeout=600,
                retries={'max_attempts': 0}  # We handle retries manually
            ))

        logger.info(f'Initialized Bedrock LLM client with model: {self.model_id}')

    def _converse(self, messages: List[Dict[str, Any]], system_prompt: str, max_tokens: int, temperature: float) -> str:
        inf_params = {'maxTokens': max_tokens, 'temperature': temperature}
        attempts = max(1, self.config.retry_attempts)

        for attempt in range(attempts):
            try:
                logger.debug(f'Bedrock LLM request attempt {attempt + 1}/{attempts}')

                request = {'modelId': self.model_id, 'messages': messages, 'inferenceConfig': inf_params}
                if system_prompt:
                    request['system'] = [{'text': system_prompt}]

                stream = self.bedrock_runtime.converse_stream(**request).get('stream')

                msg = ''
                if stream:
                    for event in stream:
                        if 'contentBlockDelta' in event:
                            msg += event['contentBlockDelta']['delta'].get('text', '')
                        if 'metadata' in event:
                            usage = event['metadata'].get('usage', {})
                            logger.debug(f"Bedrock LLM usage: in={usage.get('inputTokens')} out={usage.get('outputTokens')}")

                logger.debug(f'Bedrock LLM response generated successfully (length: {len(msg)})')
                return msg

            except (ClientError, BotoCoreError) as e:
                logger.warning(f'Bedrock LLM attempt {attempt + 1}/{attempts} failed: {e}')

                if attempt < attempts - 1:
                    # Exponential backoff with jitter
                    delay = self.config.retry_delay * (2**attempt) + random.uniform(0, 1)
                    time.sleep(delay)
                else:
                    raise BedrockLLMError(f'Bedrock LLM failed after {attempts} attempts: {e}')

            except Exception as e:
                logger.error(f'Unexpected error in Bedrock LLM: {e}')
                raise BedrockLLMError(f'Unexpected Bedrock LLM error: {e}')

        raise BedrockLLMError(f'Bedrock LLM failed after {attempts} attempts')

    async def complete(self,
                       messages: List[Dict[str, str]],
                       max_tokens: Optional[int] = None,
                       temperature: Optional[float] = None) -> str:
        """
        Generate a completion for an ordered list of chat messages.

        Args:
            messages: List of {'role', 'content'} dicts; 'system' entries become the system prompt
            max_tokens: Maximum tokens to generate (uses config default if None)
            temperature: Temperature for generation (uses config default if None)

        Returns:
            Response text

        Raises:
            BedrockLLMError: If the call fails
        """
        converse_messages, system_prompt = to_converse_messages(messages)
        if not converse_messages:
            raise BedrockLLMError('No user or assistant messages to send')

        max_tokens = max_tokens or self.config.max_tokens
        temperature = self.config.temperature if temperature is None else temperature

        return await asyncio.to_thread(self._converse, converse_messages, system_prompt, max_tokens, temperature)

    async def health_check(self) -> bool:
        """
        Perform a health check on the Bedrock LLM service.

        Returns:
            True if service is healthy, False otherwise
        """
        try:
            response = await self.complete([{
                'role': 'system',
                'content': "You are a helpful assistant. Respond with just 'OK'."
            }, {
                'role': 'user',
                'content': 'Hi'
            }],
                                           max_tokens=10,
                                           temperature=0.0)
            return len(response.strip()) > 0

        except Exception as e:
            logger.error(f'Bedrock LLM health check failed: {e}')
            return False
