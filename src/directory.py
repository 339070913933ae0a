"""
Service name to identifier lookup, built once per run.
"""

import logging
from collections import defaultdict
from typing import Dict, Iterable, List

from errors import AmbiguousService, RancherApiError, ServiceMapError, UnknownService
from models import ServiceRef

logger = logging.getLogger(__name__)


class ServiceDirectory:
    """
    Read-only snapshot of the services known to the Rancher server.

    Rancher scopes service names per stack, so the same name can appear more
    than once in a listing. Such names are kept aside and refused by
    ``resolve`` rather than mapped to whichever entry came last.
    """

    def __init__(self, services: Iterable[ServiceRef]):
        grouped: Dict[str, List[ServiceRef]] = defaultdict(list)
        for ref in services:
            grouped[ref.name].append(ref)

        self._by_name: Dict[str, ServiceRef] = {}
        self._duplicates: Dict[str, tuple] = {}
        for name, refs in grouped.items():
            if len(refs) == 1:
                self._by_name[name] = refs[0]
            else:
                self._duplicates[name] = tuple(r.identifier for r in refs)

        for name, ids in self._duplicates.items():
            logger.warning(
                f"Service name '{name}' matches {len(ids)} services ({', '.join(ids)}); it will not be upgraded"
            )

    @classmethod
    def build(cls, client) -> "ServiceDirectory":
        """
        Build the directory from a single full listing.

        Args:
            client: Object providing ``list_services()``

        Returns:
            ServiceDirectory instance

        Raises:
            ServiceMapError: If the listing cannot be fetched
        """
        try:
            services = client.list_services()
        except (RancherApiError, KeyError, TypeError) as e:
            raise ServiceMapError(f"Failed creating the service map: {e}") from e

        directory = cls(services)
        logger.info(f"Service directory built with {len(directory)} service(s)")
        return directory

    def resolve(self, name: str) -> ServiceRef:
        """
        Look up a service by name.

        Raises:
            AmbiguousService: If the name matches several services
            UnknownService: If the name is absent from the snapshot
        """
        ref = self._by_name.get(name)
        if ref is not None:
            return ref
        if name in self._duplicates:
            raise AmbiguousService(name, self._duplicates[name])
        raise UnknownService(name)

    @property
    def duplicates(self) -> Dict[str, tuple]:
        return dict(self._duplicates)

    def __contains__(self, name: str) -> bool:
        return name in self._by_name

    def __len__(self) -> int:
        return len(self._by_name)
