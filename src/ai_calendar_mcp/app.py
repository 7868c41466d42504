"""Wiring of store, model client and pipeline into one application object."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from .backends import EventStore, create_store
from .classifier import IntentClassifier
from .config import Settings
from .executor import MutationExecutor
from .llm import ChatClient
from .models import utcnow
from .pipeline import CommandPipeline
from .router import CommandRouter
from .service import CalendarService

logger = logging.getLogger("ai-calendar-mcp")


@dataclass
class CalendarApp:
    """Everything a request needs. Created at startup, closed at shutdown."""

    settings: Settings
    store: EventStore
    chat: ChatClient
    classifier: IntentClassifier
    executor: MutationExecutor
    router: CommandRouter
    pipeline: CommandPipeline
    service: CalendarService

    async def close(self) -> None:
        await self.chat.aclose()
        await self.store.close()


def build_app(
    settings: Settings,
    store: EventStore | None = None,
    chat: ChatClient | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> CalendarApp:
    store = store if store is not None else create_store(settings.store)
    chat = chat if chat is not None else ChatClient(settings.llm)
    classifier = IntentClassifier(chat, clock=clock)
    executor = MutationExecutor(store)
    router = CommandRouter(executor)
    pipeline = CommandPipeline(classifier, router)
    service = CalendarService(store, pipeline=pipeline, clock=clock)
    return CalendarApp(
        settings=settings,
        store=store,
        chat=chat,
        classifier=classifier,
        executor=executor,
        router=router,
        pipeline=pipeline,
        service=service,
    )
