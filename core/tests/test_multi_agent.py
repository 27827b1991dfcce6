"""Tests for CommunicationBus and MultiAgentManager."""

import asyncio

import pytest

from plangraph.graph.dag import DAG
from plangraph.graph.node import ToolNode
from plangraph.graph.scheduler import Scheduler
from plangraph.runtime.multi_agent import CommunicationBus, Message, MultiAgentManager


# ---- Fake agents ----
class SyncAgent:
    def __init__(self, reply: str):
        self.reply = reply

    def execute(self, inputs):
        return {"reply": f"{self.reply}: {inputs['ticket']}"}


class SlowAgent:
    def __init__(self, delay: float):
        self.delay = delay

    async def execute(self, inputs):
        await asyncio.sleep(self.delay)
        return {"waited": self.delay}


class BrokenAgent:
    async def execute(self, inputs):
        raise RuntimeError("model offline")


class SchedulerAgent:
    """Adapts a DAG + Scheduler to the agent interface."""

    def __init__(self):
        dag = DAG("triage")
        dag.add_node(ToolNode("classify", lambda inputs: {"category": "billing"}))
        self.scheduler = Scheduler(dag)

    async def execute(self, inputs):
        return await self.scheduler.execute_parallel(inputs)


# ---------------------------------------------------------------------------
# CommunicationBus
# ---------------------------------------------------------------------------


class TestCommunicationBus:
    @pytest.mark.asyncio
    async def test_send_and_receive(self):
        bus = CommunicationBus()
        first = await bus.send("triage", "billing", {"ticket": 1})
        await bus.send("triage", "shipping", {"ticket": 2})

        assert first.id.startswith("msg_")
        inbox = await bus.receive("billing")
        assert [m.content for m in inbox] == [{"ticket": 1}]
        assert len(bus.get_all_messages()) == 2

    @pytest.mark.asyncio
    async def test_receive_since(self):
        bus = CommunicationBus()
        old = await bus.send("a", "b", "old")
        new = await bus.send("a", "b", "new")
        new.timestamp = old.timestamp + 1

        assert [m.content for m in await bus.receive("b", since=old.timestamp)] == ["new"]

    @pytest.mark.asyncio
    async def test_subscribers_and_broadcast(self):
        bus = CommunicationBus()
        direct: list[Message] = []
        everything: list[Message] = []

        async def on_direct(message):
            direct.append(message)

        bus.subscribe("billing", on_direct)
        sub_id = bus.subscribe("*", everything.append)

        await bus.send("triage", "billing", "refund")
        await bus.send("triage", "shipping", "late parcel")
        assert bus.unsubscribe(sub_id)
        await bus.send("triage", "billing", "after unsubscribe")

        assert [m.content for m in direct] == ["refund", "after unsubscribe"]
        assert [m.content for m in everything] == ["refund", "late parcel"]
        assert not bus.unsubscribe(sub_id)

    @pytest.mark.asyncio
    async def test_handler_errors_do_not_break_delivery(self):
        bus = CommunicationBus()
        received = []

        def broken(message):
            raise ValueError("bad handler")

        bus.subscribe("b", broken)
        bus.subscribe("b", received.append)

        message = await bus.send("a", "b", "hello")

        assert received == [message]

    def test_message_to_dict(self):
        data = Message(from_agent="a", to_agent="b", content="hi").to_dict()
        assert set(data) == {"id", "from_agent", "to_agent", "content", "timestamp"}


# ---------------------------------------------------------------------------
# MultiAgentManager
# ---------------------------------------------------------------------------


class TestMultiAgentManager:
    @pytest.mark.asyncio
    async def test_agents_run_concurrently(self):
        manager = MultiAgentManager("support")
        for i in range(3):
            manager.add_agent(f"slow_{i}", SlowAgent(0.05))

        loop = asyncio.get_running_loop()
        started = loop.time()
        results = await manager.execute({})
        elapsed = loop.time() - started

        assert set(results) == {"slow_0", "slow_1", "slow_2"}
        assert elapsed < 0.12

    @pytest.mark.asyncio
    async def test_failures_are_mapped_to_error(self):
        manager = MultiAgentManager("support")
        manager.add_agent("writer", SyncAgent("ack"))
        manager.add_agent("broken", BrokenAgent())
        manager.add_agent("triage", SchedulerAgent())

        results = await manager.execute({"ticket": "refund"})

        assert results["writer"] == {"reply": "ack: refund"}
        assert results["broken"] == {"error": "model offline"}
        assert results["triage"]["classify"] == {"category": "billing"}
        assert manager.agents == ["writer", "broken", "triage"]

    def test_bus_is_shared(self):
        manager = MultiAgentManager("support")
        assert manager.bus is manager.bus
        assert isinstance(manager.bus, CommunicationBus)
