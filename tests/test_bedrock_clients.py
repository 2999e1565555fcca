"""Tests for the Bedrock chat and embedding wrappers with a mocked boto3 client."""

import io
import json
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError
from conftest import run_async

from semantic_memory.utils.bedrock_embed import BedrockEmbed, BedrockEmbedError
from semantic_memory.utils.bedrock_llm import BedrockLLM, BedrockLLMError, to_converse_messages
from semantic_memory.utils.config import BedrockEmbedConfig, BedrockLLMConfig

THROTTLED = ClientError({'Error': {'Code': 'ThrottlingException', 'Message': 'slow down'}}, 'InvokeModel')


def _llm(runtime, retry_attempts=1):
    config = BedrockLLMConfig(region='us-east-1', model_id='anthropic.test', max_tokens=256, temperature=0.2,
                              retry_attempts=retry_attempts, retry_delay=0.0)
    with patch('semantic_memory.utils.bedrock_llm.boto3.client', return_value=runtime):
        return BedrockLLM(config)


def _embedder(runtime, model_id='amazon.titan-embed-text-v2:0', dimension=3, retry_attempts=1):
    config = BedrockEmbedConfig(region='us-east-1', model_id=model_id, dimension=dimension,
                                retry_attempts=retry_attempts, retry_delay=0.0)
    with patch('semantic_memory.utils.bedrock_embed.boto3.client', return_value=runtime):
        return BedrockEmbed(config)


def _stream(*chunks):
    events = [{'contentBlockDelta': {'delta': {'text': chunk}}} for chunk in chunks]
    events.append({'metadata': {'usage': {'inputTokens': 5, 'outputTokens': 2}}})
    return {'stream': events}


def _body(payload):
    return {'body': io.BytesIO(json.dumps(payload).encode('utf-8'))}


class TestConverseMessages:

    def test_system_messages_become_system_prompt(self):
        messages, system = to_converse_messages([
            {'role': 'system', 'content': 'Be brief.'},
            {'role': 'user', 'content': 'Hi'},
            {'role': 'assistant', 'content': 'Hello'},
            {'role': 'tool', 'content': 'ignored'},
        ])

        assert system == 'Be brief.'
        assert messages == [{'role': 'user', 'content': [{'text': 'Hi'}]},
                            {'role': 'assistant', 'content': [{'text': 'Hello'}]}]


class TestBedrockLLM:

    def test_complete_joins_stream(self):
        runtime = MagicMock()
        runtime.converse_stream.return_value = _stream('Hel', 'lo')

        reply = run_async(_llm(runtime).complete([{'role': 'system', 'content': 'sys'}, {'role': 'user', 'content': 'Hi'}]))

        assert reply == 'Hello'
        request = runtime.converse_stream.call_args.kwargs
        assert request['system'] == [{'text': 'sys'}]
        assert request['inferenceConfig'] == {'maxTokens': 256, 'temperature': 0.2}

    def test_no_retry_by_default(self):
        runtime = MagicMock()
        runtime.converse_stream.side_effect = THROTTLED

        with pytest.raises(BedrockLLMError):
            run_async(_llm(runtime).complete([{'role': 'user', 'content': 'Hi'}]))

        assert runtime.converse_stream.call_count == 1

    def test_retries_when_configured(self):
        runtime = MagicMock()
        runtime.converse_stream.side_effect = [THROTTLED, _stream('ok')]

        with patch('semantic_memory.utils.bedrock_llm.time.sleep'):
            reply = run_async(_llm(runtime, retry_attempts=2).complete([{'role': 'user', 'content': 'Hi'}]))

        assert reply == 'ok'
        assert runtime.converse_stream.call_count == 2

    def test_system_only_is_rejected(self):
        with pytest.raises(BedrockLLMError):
            run_async(_llm(MagicMock()).complete([{'role': 'system', 'content': 'sys'}]))


class TestBedrockEmbed:

    def test_titan_embedding(self):
        runtime = MagicMock()
        runtime.invoke_model.return_value = _body({'embedding': [0.1, 0.2, 0.3]})

        assert run_async(_embedder(runtime).embed('hello')) == [0.1, 0.2, 0.3]
        sent = json.loads(runtime.invoke_model.call_args.kwargs['body'])
        assert sent == {'inputText': 'hello', 'dimensions': 3}

    def test_wrong_dimension_is_an_error(self):
        runtime = MagicMock()
        runtime.invoke_model.return_value = _body({'embedding': [0.1, 0.2]})

        with pytest.raises(BedrockEmbedError):
            run_async(_embedder(runtime).embed('hello'))

    def test_empty_text_returns_zero_vector_without_calling(self):
        runtime = MagicMock()

        assert run_async(_embedder(runtime).embed('   ')) == [0.0, 0.0, 0.0]
        runtime.invoke_model.assert_not_called()

    def test_failure_is_wrapped(self):
        runtime = MagicMock()
        runtime.invoke_model.side_effect = THROTTLED

        with pytest.raises(BedrockEmbedError):
            run_async(_embedder(runtime).embed('hello'))

    def test_cohere_requires_1024_dimensions(self):
        with pytest.raises(BedrockEmbedError):
            run_async(_embedder(MagicMock(), model_id='cohere.embed-english-v3').embed('hello'))

    def test_health_check(self):
        runtime = MagicMock()
        runtime.invoke_model.return_value = _body({'embedding': [0.1, 0.2, 0.3]})
        assert run_async(_embedder(runtime).health_check()) is True

        runtime.invoke_model.side_effect = THROTTLED
        assert run_async(_embedder(runtime).health_check()) is False
