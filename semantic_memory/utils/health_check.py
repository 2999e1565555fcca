"""
Health check utilities for the memory engine's external providers.
"""

from typing import Any, Dict, Optional

from .bedrock_embed import BedrockEmbed
from .bedrock_llm import BedrockLLM
from .config import AppConfig, config
from .logging_config import get_logger
from .opensearch_client import OpenSearchClient

logger = get_logger(__name__)


async def get_health_status(llm: BedrockLLM,
                            embedder: BedrockEmbed,
                            index: OpenSearchClient,
                            app_config: Optional[AppConfig] = None) -> Dict[str, Any]:
    """Get detailed health status of all providers.

    Args:
        llm: Chat model client
        embedder: Embedding provider client
        index: Vector index client
        app_config: Configuration used for reporting (global config if None)

    Returns:
        Dictionary with health status of each component
    """
    app_config = app_config or config
    health_status = {}

    try:
        health_status['bedrock_llm'] = {
            'healthy': await llm.health_check(),
            'service': 'Amazon Bedrock LLM',
            'model': app_config.bedrock_llm.model_id
        }
    except Exception as e:
        health_status['bedrock_llm'] = {'healthy': False, 'service': 'Amazon Bedrock LLM', 'error': str(e)}

    try:
        health_status['bedrock_embed'] = {
            'healthy': await embedder.health_check(),
            'service': 'Amazon Bedrock Embed',
            'model': app_config.bedrock_embed.model_id
        }
    except Exception as e:
        health_status['bedrock_embed'] = {'healthy': False, 'service': 'Amazon Bedrock Embed', 'error': str(e)}

    try:
        health_status['opensearch'] = {
            'healthy': await index.health_check(),
            'service': 'Amazon OpenSearch',
            'endpoint': app_config.opensearch.endpoint
        }
    except Exception as e:
        health_status['opensearch'] = {'healthy': False, 'service': 'Amazon OpenSearch', 'error': str(e)}

    return health_status


async def check_health(llm: BedrockLLM, embedder: BedrockEmbed, index: OpenSearchClient) -> bool:
    """Check the health of all providers.

    Returns:
        True if all components are healthy, False otherwise
    """
    health_status = await get_health_status(llm, embedder, index)
    all_healthy = all(status.get('healthy', False) for status in health_status.values())

    if all_healthy:
        logger.info('All system components are healthy')
    else:
        unhealthy = [name for name, status in health_status.items() if not status.get('healthy', False)]
        logger.warning(f'Unhealthy components: {", ".join(unhealthy)}')

    return all_healthy
