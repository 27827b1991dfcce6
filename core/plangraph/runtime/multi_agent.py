"""
Multi-agent coordination: run several agents on the same inputs and let them
exchange messages over an in-memory bus.

Example:
    manager = MultiAgentManager("support")
    manager.add_agent("triage", triage_executor)
    manager.add_agent("billing", billing_executor)

    async def on_message(message: Message) -> None:
        print(f"{message.from_agent} -> {message.to_agent}: {message.content}")

    manager.bus.subscribe("*", on_message)
    results = await manager.execute({"ticket": "Refund request"})
"""

import asyncio
import inspect
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

logger = logging.getLogger(__name__)

BROADCAST = "*"


def _message_id() -> str:
    return f"msg_{uuid.uuid4().hex[:8]}"


@dataclass
class Message:
    """A message between two agents. ``timestamp`` is epoch seconds."""

    from_agent: str
    to_agent: str
    content: Any
    id: str = field(default_factory=_message_id)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "from_agent": self.from_agent,
            "to_agent": self.to_agent,
            "content": self.content,
            "timestamp": self.timestamp,
        }


# Type for message handlers (sync or async)
MessageHandler = Callable[[Message], Awaitable[None] | None]


@dataclass
class Subscription:
    """A subscription to messages addressed to one agent (or all, with "*")."""

    id: str
    agent: str
    handler: MessageHandler


class CommunicationBus:
    """
    In-memory message log with push delivery to subscribers.

    Messages are kept in send order. ``receive`` pulls the messages addressed
    to an agent; subscribers are pushed each message as it is sent.
    """

    def __init__(self) -> None:
        self._messages: list[Message] = []
        self._subscriptions: dict[str, Subscription] = {}
        self._subscription_counter = 0
        self._lock = asyncio.Lock()

    async def send(self, from_agent: str, to_agent: str, content: Any) -> Message:
        message = Message(from_agent=from_agent, to_agent=to_agent, content=content)
        async with self._lock:
            self._messages.append(message)

        handlers = [
            sub.handler
            for sub in self._subscriptions.values()
            if sub.agent in (to_agent, BROADCAST)
        ]
        if handlers:
            await self._deliver(message, handlers)
        return message

    async def receive(self, agent: str, since: float | None = None) -> list[Message]:
        """Messages addressed to ``agent``, optionally only those sent after ``since``."""
        return [
            message
            for message in self._messages
            if message.to_agent == agent and (since is None or message.timestamp > since)
        ]

    def get_all_messages(self) -> list[Message]:
        return list(self._messages)

    def subscribe(self, agent: str, handler: MessageHandler) -> str:
        """
        Push messages addressed to ``agent`` to ``handler``.

        Returns:
            Subscription ID (use to unsubscribe)
        """
        self._subscription_counter += 1
        sub_id = f"sub_{self._subscription_counter}"
        self._subscriptions[sub_id] = Subscription(id=sub_id, agent=agent, handler=handler)
        logger.debug(f"Subscription {sub_id} registered for agent '{agent}'")
        return sub_id

    def unsubscribe(self, subscription_id: str) -> bool:
        if subscription_id in self._subscriptions:
            del self._subscriptions[subscription_id]
            logger.debug(f"Subscription {subscription_id} removed")
            return True
        return False

    async def _deliver(self, message: Message, handlers: list[MessageHandler]) -> None:
        async def run_handler(handler: MessageHandler) -> None:
            try:
                result = handler(message)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Handler error for message {message.id}: {e}")

        await asyncio.gather(*[run_handler(h) for h in handlers])


class AgentExecutor(Protocol):
    def execute(self, inputs: dict[str, Any]) -> Any: ...


class MultiAgentManager:
    """Runs registered agents concurrently on shared inputs."""

    def __init__(self, name: str):
        self.name = name
        self._agents: dict[str, AgentExecutor] = {}
        self._bus = CommunicationBus()

    @property
    def bus(self) -> CommunicationBus:
        return self._bus

    @property
    def agents(self) -> list[str]:
        return list(self._agents)

    def add_agent(self, name: str, agent: AgentExecutor) -> None:
        if name in self._agents:
            logger.debug(f"Replacing agent '{name}' in '{self.name}'")
        self._agents[name] = agent

    async def execute(self, inputs: dict[str, Any]) -> dict[str, Any]:
        """
        Run every agent with ``inputs``.

        Returns:
            {agent_name: result}; a failed agent maps to {"error": message}
        """

        async def run_agent(name: str, agent: AgentExecutor) -> Any:
            try:
                result = agent.execute(dict(inputs))
                if inspect.isawaitable(result):
                    result = await result
                return result
            except Exception as e:
                logger.warning(f"⚠ Agent '{name}' in '{self.name}' failed: {e}")
                return {"error": str(e)}

        names = list(self._agents)
        results = await asyncio.gather(*(run_agent(n, self._agents[n]) for n in names))
        return dict(zip(names, results, strict=True))
