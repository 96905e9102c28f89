from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

from x402_agents.errors import AgentNotFound
from x402_agents.types import AgentRecord

logger = logging.getLogger(__name__)

STARTING_REPUTATION = 100
MIN_REPUTATION = 0
MAX_REPUTATION = 1000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AgentRegistry:
    """Directory of known agents and the services they advertise.

    Records are owned by the registry: every mutation happens under one lock
    and callers only ever receive copies. Registration is self-asserted;
    nothing proves that the registrant controls the advertised address.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._agents: dict[str, AgentRecord] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def register(self, name: str, services: list[str], address: str) -> str:
        """Create a record and return its identifier.

        Raises:
            ValueError: If name, services or address are missing
        """
        if not name or not address or not isinstance(services, list):
            raise ValueError("Missing required fields")

        agent_id = f"agent-{uuid.uuid4().hex}"
        record = AgentRecord(
            id=agent_id,
            name=name,
            services=list(dict.fromkeys(services)),
            address=address,
            reputation=STARTING_REPUTATION,
            last_seen=self._clock(),
        )
        with self._lock:
            self._agents[agent_id] = record
        logger.info("Registered agent %s (%s) offering %s", agent_id, name, record.services)
        return agent_id

    def lookup(self, agent_id: str) -> AgentRecord:
        with self._lock:
            return self._get(agent_id).model_copy(deep=True)

    def list(self, service: Optional[str] = None) -> list[AgentRecord]:
        """All records in registration order, optionally only those offering ``service``."""
        with self._lock:
            snapshot = [record.model_copy(deep=True) for record in self._agents.values()]
        if service:
            snapshot = [record for record in snapshot if service in record.services]
        return snapshot

    def heartbeat(self, agent_id: str) -> AgentRecord:
        with self._lock:
            record = self._get(agent_id)
            record.last_seen = self._clock()
            return record.model_copy(deep=True)

    def adjust_reputation(
        self, agent_id: str, delta: int, reason: Optional[str] = None
    ) -> AgentRecord:
        """Apply ``delta`` to the agent's reputation, clamped to [0, 1000]."""
        with self._lock:
            record = self._get(agent_id)
            record.reputation = max(
                MIN_REPUTATION, min(MAX_REPUTATION, record.reputation + delta)
            )
            updated = record.model_copy(deep=True)
        logger.info(
            "Reputation of %s changed by %d to %d (%s)",
            agent_id,
            delta,
            updated.reputation,
            reason or "no reason given",
        )
        return updated

    def __len__(self) -> int:
        with self._lock:
            return len(self._agents)

    def _get(self, agent_id: str) -> AgentRecord:
        try:
            return self._agents[agent_id]
        except KeyError:
            raise AgentNotFound(agent_id) from None
