"""RoutingService: forward wrapping for mediated recipients."""

import json
import logging
from typing import List, Tuple

from didcomm_agent.message import DIDCommMessage
from didcomm_agent.packaging import Packing, PackagingService, media_type_of
from didcomm_agent.resolver import DID_PATTERN, DIDResolver
from didcomm_agent.resolver.document import Service, did_of

LOG = logging.getLogger(__name__)

FORWARD = "https://didcomm.org/routing/2.0/forward"
MAX_HOPS = 5


class RoutingServiceError(Exception):
    """Raised when an error occurs in the RoutingService."""


class RoutingService:
    """Find where to deliver a message and wrap it for each mediator."""

    def __init__(self, packaging: PackagingService, resolver: DIDResolver):
        """Initialize the RoutingService."""
        self.packaging = packaging
        self.resolver = resolver

    async def _resolve_services(self, to: str) -> List[Service]:
        did_doc = await self.resolver.resolve_and_parse(did_of(to))
        return [
            service
            for service in did_doc.services_of_type("DIDCommMessaging")
            if any("didcomm/v2" in endpoint.accept for endpoint in service.endpoints)
        ]

    async def is_forwardable_service(self, service: Service) -> bool:
        """Determine if the uri of a service is a DID we should forward to."""
        uri = service.endpoints[0].uri
        return bool(DID_PATTERN.match(uri)) and await self.resolver.is_resolvable(uri)

    def _create_forward_message(
        self, to: str, next_target: str, packed: str
    ) -> DIDCommMessage:
        return DIDCommMessage(
            type=FORWARD,
            to=[to],
            body={"next": next_target},
            attachments=[
                {
                    "media_type": media_type_of(packed),
                    "data": {"json": json.loads(packed)},
                }
            ],
        )

    async def _forward(self, key: str, next_target: str, packed: str) -> str:
        LOG.debug("Wrapping message for %s in forward to %s", next_target, key)
        return await self.packaging.pack(
            self._create_forward_message(key, next_target, packed), Packing.ANONCRYPT
        )

    async def prepare_forward(self, to: str, packed: str) -> Tuple[str, List[Service]]:
        """Wrap a packed message for the mediators in front of a recipient.

        Args:
            to: The recipient of the message, a DID or DID URL.
            packed: The packed message.

        Returns:
            The message to deliver, and the services to deliver it to.
        """
        services = await self._resolve_services(to)
        if not services:
            raise RoutingServiceError(f"No DIDCommMessaging service found for {to}")

        next_target = did_of(to)
        for _ in range(MAX_HOPS):
            endpoint = services[0].endpoints[0]

            # The first routing key wraps the outermost forward
            for key in reversed(endpoint.routing_keys):
                packed = await self._forward(key, next_target, packed)
                next_target = key

            if not await self.is_forwardable_service(services[0]):
                return packed, services

            mediator = endpoint.uri
            packed = await self._forward(mediator, next_target, packed)
            next_target = mediator
            services = await self._resolve_services(mediator)
            if not services:
                raise RoutingServiceError(
                    f"No DIDCommMessaging service found for mediator {mediator}"
                )

        raise RoutingServiceError(f"Too many mediators in front of {to}")
