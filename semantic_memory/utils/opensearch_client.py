"""
OpenSearch client wrapper acting as the vector index for memory records.
"""

import asyncio
from typing import Any, Dict, List, Optional, Tuple

import boto3
from opensearchpy import OpenSearch, RequestsHttpConnection
from opensearchpy.exceptions import NotFoundError, OpenSearchException
from requests_aws4auth import AWS4Auth

from .config import OpenSearchConfig
from .errors import ProviderError
from .logging_config import get_logger

logger = get_logger(__name__)

# OpenSearch refuses result windows larger than this by default; also the page size of filtered fetches
MAX_RESULT_WINDOW = 10000

QueryHit = Tuple[str, str, Dict[str, Any], float]
StoredRecord = Tuple[str, str, Dict[str, Any], Optional[List[float]]]


class OpenSearchError(ProviderError):
    """Custom exception for OpenSearch errors."""
    pass


def build_filter_clauses(filter: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Translate an equality filter on metadata keys into OpenSearch term clauses.

    Args:
        filter: Mapping of metadata key to required value (None values are ignored)

    Returns:
        List of term clauses for a bool filter
    """
    if not filter:
        return []
    return [{'term': {f'metadata.{key}': value}} for key, value in filter.items() if value is not None]


def score_to_distance(score: float) -> float:
    """Convert a k-NN cosinesimil score back to cosine distance.

    The nmslib cosinesimil space scores hits as 1 / (1 + d) with d = 1 - cos.
    """
    if score <= 0:
        return 2.0
    return min(2.0, max(0.0, 1.0 / score - 1.0))


class OpenSearchClient:
    """OpenSearch k-NN index with AWS authentication and error handling."""

    def __init__(self, config: OpenSearchConfig, client: Optional[OpenSearch] = None):
        """
        Initialize OpenSearch client.

        Args:
            config: OpenSearchConfig instance with connection parameters
            client: Pre-built OpenSearch client (built from config if None)
        """
        self.config = config
        self.index_name = config.index_name
        self.page_size = MAX_RESULT_WINDOW

        if client is None:
            # Get AWS credentials and create auth
            credentials = boto3.Session().get_credentials()
            auth = AWS4Auth(region=config.region, service='aoss', refreshable_credentials=credentials)
            endpoint = config.endpoint
            if '://' in endpoint:
                # Remove protocol if present
                endpoint = endpoint.split('://', 1)[1]

            client = OpenSearch(hosts=[{
                'host': endpoint,
                'port': config.port
            }],
                                http_auth=auth,
                                use_ssl=True,
                                verify_certs=True,
                                connection_class=RequestsHttpConnection)

        self.client = client
        logger.info(f'Initialized OpenSearch client for endpoint: {config.endpoint}')

    def _create_index_sync(self) -> str:
        if self.client.indices.exists(index=self.index_name):
            logger.debug(f'Index {self.index_name} already exists')
            return 'exists'

        index_body = {
            'mappings': {
                'properties': {
                    'text': {
                        'type': 'text'
                    },
                    'embedding': {
                        'type': 'knn_vector',
                        'dimension': self.config.dimension,
                        'method': {
                            'name': 'hnsw',
                            'space_type': 'cosinesimil',
                            'engine': 'nmslib',
                            'parameters': {
                                'ef_construction': 200,
                                'm': 16
                            }
                        }
                    },
                    'metadata': {
                        'type': 'object',
                        'dynamic': True,
                        'properties': {
                            'userId': {
                                'type': 'keyword'
                            },
                            'type': {
                                'type': 'keyword'
                            },
                            'category': {
                                'type': 'keyword'
                            },
                            'sessionId': {
                                'type': 'keyword'
                            },
                            'timestamp': {
                                'type': 'long'
                            },
                            'importance': {
                                'type': 'float'
                            }
                        }
                    }
                }
            },
            'settings': {
                'index': {
                    'knn': True,
                    'knn.algo_param.ef_search': 50
                }
            }
        }

        response = self.client.indices.create(index=self.index_name, body=index_body)
        if response.get('acknowledged', False):
            logger.info(f'Created index {self.index_name}')
            return 'created'
        return 'failed'

    async def create_index_if_not_exists(self) -> str:
        """
        Create the memory index if it doesn't exist.

        Returns:
            'exists', 'created' or 'failed'
        """
        try:
            return await asyncio.to_thread(self._create_index_sync)
        except OpenSearchException as e:
            logger.error(f'Error creating index {self.index_name}: {e}')
            raise OpenSearchError(f'Failed to create index: {e}')
        except Exception as e:
            logger.error(f'Unexpected error creating index {self.index_name}: {e}')
            raise OpenSearchError(f'Unexpected error creating index: {e}')

    async def upsert(self, id: str, vector: List[float], text: str, metadata: Dict[str, Any]) -> None:
        """
        Insert or replace one record.

        Args:
            id: Record id
            vector: Embedding vector
            text: Document text
            metadata: Flat metadata map used for filtering
        """
        document = {'text': text, 'embedding': vector, 'metadata': metadata}
        try:
            await asyncio.to_thread(self.client.index, index=self.index_name, id=id, body=document)
            logger.debug(f'Upserted record {id} in {self.index_name}')
        except OpenSearchException as e:
            logger.error(f'Error upserting record {id}: {e}')
            raise OpenSearchError(f'Failed to upsert record: {e}')
        except Exception as e:
            logger.error(f'Unexpected error upserting record {id}: {e}')
            raise OpenSearchError(f'Unexpected error upserting record: {e}')

    async def query(self, vector: List[float], filter: Optional[Dict[str, Any]], k: int) -> List[QueryHit]:
        """
        Perform a filtered k-nearest-neighbour search.

        Args:
            vector: Query vector
            filter: Equality filter on metadata keys
            k: Number of neighbours to return

        Returns:
            List of (id, text, metadata, cosine distance), nearest first
        """
        search_body = {
            'size': k,
            'query': {
                'bool': {
                    'must': [{
                        'knn': {
                            'embedding': {
                                'vector': vector,
                                'k': k
                            }
                        }
                    }],
                    'filter': build_filter_clauses(filter)
                }
            },
            '_source': {
                'excludes': ['embedding']  # Don't return embedding in results
            }
        }

        try:
            response = await asyncio.to_thread(self.client.search, index=self.index_name, body=search_body)
        except OpenSearchException as e:
            logger.error(f'Error performing vector search: {e}')
            raise OpenSearchError(f'Vector search failed: {e}')
        except Exception as e:
            logger.error(f'Unexpected error in vector search: {e}')
            raise OpenSearchError(f'Unexpected error in vector search: {e}')

        hits = []
        for hit in response['hits']['hits']:
            source = hit.get('_source', {})
            hits.append((hit['_id'], source.get('text', ''), source.get('metadata') or {}, score_to_distance(hit['_score'])))

        logger.debug(f'Vector search returned {len(hits)} hits')
        return hits

    async def _search(self, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return await asyncio.to_thread(self.client.search, index=self.index_name, body=body)
        except OpenSearchException as e:
            logger.error(f'Error fetching records: {e}')
            raise OpenSearchError(f'Failed to get records: {e}')
        except Exception as e:
            logger.error(f'Unexpected error fetching records: {e}')
            raise OpenSearchError(f'Unexpected error getting records: {e}')

    @staticmethod
    def _to_records(hits: List[Dict[str, Any]]) -> List[StoredRecord]:
        records = []
        for hit in hits:
            source = hit.get('_source', {})
            records.append((hit['_id'], source.get('text', ''), source.get('metadata') or {}, source.get('embedding')))
        return records

    async def get(self, ids: Optional[List[str]] = None, filter: Optional[Dict[str, Any]] = None) -> List[StoredRecord]:
        """
        Fetch records by ids or by metadata filter.

        Filtered fetches page through every match with search_after, oldest first.

        Args:
            ids: Record ids to fetch
            filter: Equality filter on metadata keys (used when ids is None)

        Returns:
            List of (id, text, metadata, embedding)
        """
        if ids is not None:
            if not ids:
                return []
            response = await self._search({'size': len(ids), 'query': {'ids': {'values': list(ids)}}})
            return self._to_records(response['hits']['hits'])

        body = {
            'size': self.page_size,
            'query': {
                'bool': {
                    'filter': build_filter_clauses(filter)
                }
            },
            'sort': [{
                'metadata.timestamp': {
                    'order': 'asc',
                    'missing': '_first'
                }
            }, {
                '_id': 'asc'
            }]
        }

        records = []
        page = body
        while True:
            hits = (await self._search(page))['hits']['hits']
            records.extend(self._to_records(hits))
            if len(hits) < self.page_size:
                break
            page = dict(body, search_after=hits[-1]['sort'])
            logger.debug(f'Fetched {len(records)} records so far, requesting next page')

        return records

    async def _delete_ids(self, ids: List[str]) -> int:
        deleted = 0
        for doc_id in ids:
            try:
                await asyncio.to_thread(self.client.delete, index=self.index_name, id=doc_id)
                deleted += 1
            except NotFoundError:
                logger.warning(f'Record {doc_id} not found for deletion')
            except OpenSearchException as e:
                logger.error(f'Error deleting record {doc_id}: {e}')
                raise OpenSearchError(f'Failed to delete record: {e}')
            except Exception as e:
                logger.error(f'Unexpected error deleting record {doc_id}: {e}')
                raise OpenSearchError(f'Unexpected error deleting record: {e}')
        return deleted

    async def delete(self, ids: Optional[List[str]] = None, filter: Optional[Dict[str, Any]] = None) -> int:
        """
        Delete records by ids or by metadata filter.

        A filtered delete repeats fetch-then-delete until no match remains or
        a pass removes nothing.

        Args:
            ids: Record ids to delete
            filter: Equality filter on metadata keys (used when ids is None)

        Returns:
            Number of records deleted
        """
        if ids is not None:
            deleted = await self._delete_ids(ids)
        elif not filter:
            raise OpenSearchError('Refusing to delete without ids or filter')
        else:
            deleted = 0
            while True:
                matching = [record[0] for record in await self.get(filter=filter)]
                if not matching:
                    break
                removed = await self._delete_ids(matching)
                deleted += removed
                if removed == 0:
                    break

        logger.debug(f'Deleted {deleted} records from {self.index_name}')
        return deleted

    async def count(self, filter: Optional[Dict[str, Any]] = None) -> int:
        """
        Count records, optionally restricted by a metadata filter.

        Args:
            filter: Equality filter on metadata keys

        Returns:
            Number of matching records
        """
        body = {'query': {'bool': {'filter': build_filter_clauses(filter)}}}
        try:
            response = await asyncio.to_thread(self.client.count, index=self.index_name, body=body)
            return int(response.get('count', 0))
        except OpenSearchException as e:
            logger.error(f'Error counting records: {e}')
            raise OpenSearchError(f'Failed to count records: {e}')
        except Exception as e:
            logger.error(f'Unexpected error counting records: {e}')
            raise OpenSearchError(f'Unexpected error counting records: {e}')

    async def health_check(self) -> bool:
        """
        Perform a health check on the OpenSearch service.

        Returns:
            True if service is healthy, False otherwise
        """
        try:
            response = await asyncio.to_thread(self.client.indices.exists, index=self.index_name)
            return response in [True, False]

        except Exception as e:
            logger.error(f'OpenSearch health check failed: {e}')
            return False
