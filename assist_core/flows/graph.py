"""LangGraph construction and node implementations for one chat turn.

assemble -> generate -> persist, strictly sequential. Any node error
propagates out of ``invoke`` and nothing is persisted.
"""

from __future__ import annotations

from datetime import datetime, timezone

from langgraph.graph import END, StateGraph
from langgraph.graph.state import CompiledStateGraph

from assist_core.context.assembler import ContextAssembler
from assist_core.domain.conversation import ConversationStore, Message
from assist_core.flows.state import TurnState
from assist_core.infrastructure.logging.logger import logger
from assist_core.providers import create_adapter
from assist_core.providers.fallback import TieredFallbackInvoker


def assemble_node(state: TurnState, assembler: ContextAssembler) -> TurnState:
    logger.info("assemble_node.start", extra={"extra": {"trace_id": state.get("trace_id")}})
    context = assembler.assemble(
        state.get("identity"),
        state["session"],
        user_message=state.get("user_message"),
        note_ids=state.get("note_ids"),
        attachments=state.get("attachments"),
    )
    return {"context": context}


def generate_node(state: TurnState, invoker: TieredFallbackInvoker, cfg) -> TurnState:
    adapter = create_adapter(state["model"], cfg)
    context = state["context"]
    logger.info(
        "generate_node.start",
        extra={"extra": {"trace_id": state.get("trace_id"), "provider": adapter.name}},
    )
    outcome = invoker.invoke(adapter.name, adapter.variants, lambda variant: adapter.build_request(context, variant))
    outcome.text = adapter.extract_text(outcome.raw)
    logger.info(
        "generate_node.end",
        extra={"extra": {"trace_id": state.get("trace_id"), "variant": outcome.variant, "chars": len(outcome.text)}},
    )
    return {"outcome": outcome, "assistant_text": outcome.text}


def persist_node(state: TurnState, store: ConversationStore) -> TurnState:
    session = state["session"]
    message = Message(
        role="assistant",
        content=state["assistant_text"],
        timestamp=datetime.now(timezone.utc),
    )
    updated = store.append_message(session.id, message, expected_count=len(session.messages))
    logger.info(
        "persist_node.stored",
        extra={"extra": {"trace_id": state.get("trace_id"), "conversation_id": session.id, "messages": len(updated.messages)}},
    )
    return {"assistant_message": message, "session": updated}


def build_graph(
    assembler: ContextAssembler,
    invoker: TieredFallbackInvoker,
    store: ConversationStore,
    cfg,
) -> CompiledStateGraph:
    graph = StateGraph(TurnState)
    graph.add_node("assemble", lambda s: assemble_node(s, assembler))
    graph.add_node("generate", lambda s: generate_node(s, invoker, cfg))
    graph.add_node("persist", lambda s: persist_node(s, store))
    graph.set_entry_point("assemble")
    graph.add_edge("assemble", "generate")
    graph.add_edge("generate", "persist")
    graph.add_edge("persist", END)
    return graph.compile()
