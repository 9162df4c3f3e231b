"""Explicit wiring of stores, ports, dispatcher, harness and gateway.

``build_pipeline`` is the single place where concrete implementations are
chosen; tests pass fakes through its keyword overrides.
"""
from dataclasses import dataclass
from typing import Optional

from ideaqueue.gateway.admin_actions import AdminGateway
from ideaqueue.jobs.harness import JobHarness, JobServices
from ideaqueue.jobs.registry import build_jobs
from ideaqueue.ports.base import FulfillmentPort, ImageGenerator, Notifier, StorefrontPort, TextGenerator
from ideaqueue.ports.image_generation import FalImageGenerator
from ideaqueue.ports.printful import PrintfulClient
from ideaqueue.ports.shopify import ShopifyClient
from ideaqueue.ports.telegram import TelegramNotifier
from ideaqueue.ports.text_generation import OpenRouterTextGenerator
from ideaqueue.shared.bucket_registry import BucketRegistry
from ideaqueue.shared.config_store import ConfigStore
from ideaqueue.shared.cosmos_client import CosmosDBClient
from ideaqueue.shared.dispatcher import (
    EventDispatcher,
    InlineTransport,
    StorageQueueTransport,
    ThreadPoolTransport,
    Transport,
)
from ideaqueue.shared.idea_store import IdeaStore, build_idea_store
from ideaqueue.shared.logging_utils import info as log_info
from ideaqueue.shared.revision_ledger import RevisionLedger
from ideaqueue.shared.run_state import RunStateStore, build_run_state_store
from ideaqueue.shared.settings import PipelineSettings


@dataclass
class Pipeline:
    settings: PipelineSettings
    services: JobServices
    dispatcher: EventDispatcher
    harness: JobHarness
    gateway: AdminGateway

    def close(self) -> None:
        self.dispatcher.transport.close()


def build_transport(settings: PipelineSettings) -> Transport:
    if settings.dispatchTransport == "queue":
        return StorageQueueTransport(settings.storageConnectionString, settings.queuePrefix)
    if settings.dispatchTransport == "threads":
        return ThreadPoolTransport(settings.dispatchWorkers)
    return InlineTransport()


def build_pipeline(
    settings: Optional[PipelineSettings] = None,
    *,
    config: Optional[ConfigStore] = None,
    ideas: Optional[IdeaStore] = None,
    run_state: Optional[RunStateStore] = None,
    transport: Optional[Transport] = None,
    text: Optional[TextGenerator] = None,
    images: Optional[ImageGenerator] = None,
    fulfillment: Optional[FulfillmentPort] = None,
    storefront: Optional[StorefrontPort] = None,
    notifier: Optional[Notifier] = None,
) -> Pipeline:
    settings = settings or PipelineSettings.from_env()

    cosmos_client = None
    if settings.cosmos_configured and (ideas is None or run_state is None):
        cosmos_client = CosmosDBClient(settings.cosmosConnectionString, settings.cosmosDatabase)

    config = config or ConfigStore.from_yaml(settings.seedFile)
    ideas = ideas or build_idea_store(settings, cosmos_client)
    run_state = run_state or build_run_state_store(settings, cosmos_client)
    ledger = RevisionLedger(ideas)
    buckets = BucketRegistry(config, run_state)

    services = JobServices(
        settings=settings,
        ideas=ideas,
        ledger=ledger,
        buckets=buckets,
        config=config,
        run_state=run_state,
        text=text or OpenRouterTextGenerator(settings.openrouterApiKey, settings.openrouterModel),
        images=images or FalImageGenerator(settings.falKey),
        fulfillment=fulfillment or PrintfulClient(settings.printfulApiKey, settings.printfulStoreId),
        storefront=storefront or ShopifyClient(settings.shopifyStoreDomain, settings.shopifyAdminApiToken),
        notifier=notifier or TelegramNotifier(settings.telegramBotToken, settings.telegramChatId),
    )

    dispatcher = EventDispatcher(transport or build_transport(settings))
    harness = JobHarness(services, dispatcher, run_state, backoff_factor=settings.retryBackoffSeconds)
    for job in build_jobs():
        harness.register(job)
    dispatcher.transport.bind(harness.handle)

    gateway = AdminGateway(ideas, ledger, buckets, dispatcher, harness, run_state)
    log_info(
        None,
        "pipeline:built",
        ideaStore=type(ideas).__name__,
        runState=type(run_state).__name__,
        transport=type(dispatcher.transport).__name__,
        jobs=len(harness.jobs),
    )
    return Pipeline(settings=settings, services=services, dispatcher=dispatcher, harness=harness, gateway=gateway)
