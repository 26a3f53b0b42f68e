"""Services for tempo-utils.

Services:
- query_client: TraceQL search and query builders
- batch: concurrent batch execution
- span_reader: geolocation from primary/secondary spans
- cache: TTL cache for geo lookups
- performance: query execution tracking
"""

__all__: list[str] = []
