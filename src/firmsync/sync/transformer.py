"""
Normalizes raw provider records into the shape downstream consumers expect.

No DB access here. Every output record is a new dict: the provider-specific
transform (identity unless one is registered) followed by a `provider` tag.
No filtering or deduplication happens at this stage, and transform() never
rejects a record: a non-mapping element becomes just the `provider` tag.
"""
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

RecordTransform = Callable[[Mapping[str, Any]], Dict[str, Any]]


def _identity(record: Any) -> Dict[str, Any]:
    return dict(record) if isinstance(record, Mapping) else {}


class DataTransformer:
    def __init__(self, transforms: Optional[Dict[str, RecordTransform]] = None):
        """
        Args:
            transforms: Optional mapping of provider key to a per-record
                transform. Each transform must return a new mapping and
                must not mutate its input.
        """
        self._transforms: Dict[str, RecordTransform] = dict(transforms or {})

    def register(self, provider: str, fn: RecordTransform) -> None:
        self._transforms[provider] = fn

    def transform(
        self, raw_data: Sequence[Mapping[str, Any]], provider: str
    ) -> List[Dict[str, Any]]:
        """
        Apply the provider's transform to each record and tag it.

        Args:
            raw_data: Raw records as returned by the provider adapter.
            provider: Provider key, copied into each output's `provider` field.

        Returns:
            A list the same length as raw_data, in the same order.
        """
        fn = self._transforms.get(provider, _identity)
        return [{**fn(record), "provider": provider} for record in raw_data]
