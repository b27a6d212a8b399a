"""Wiring for the portal core components."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .advisor import PortalAdvisor
from .config import Settings, get_settings
from .directory import DirectoryCache
from .gateway import BackendGateway, RestBackendGateway
from .logging_config import configure_logging
from .mutations import StatusMutationGateway
from .reconciler import ProfileReconciler
from .retry import RetryPolicy, Sleeper
from .router import HashRouter
from .sample_data import SampleDirectoryProvider, default_sample_instructors
from .session import SessionController
from .state import AppState

logger = logging.getLogger(__name__)


@dataclass
class Portal:
    settings: Settings
    state: AppState
    gateway: BackendGateway
    directory: DirectoryCache
    reconciler: ProfileReconciler
    router: HashRouter
    session: SessionController
    mutations: StatusMutationGateway
    advisor: PortalAdvisor

    async def start(self) -> None:
        self.session.start()
        await self.session.boot()

    async def retry(self) -> None:
        await self.session.retry()

    async def close(self) -> None:
        self.session.stop()
        aclose = getattr(self.gateway, "aclose", None)
        if aclose is not None:
            await aclose()


def create_portal(
    settings: Optional[Settings] = None,
    *,
    gateway: Optional[BackendGateway] = None,
    sleep: Optional[Sleeper] = None,
    sample_provider: SampleDirectoryProvider = default_sample_instructors,
    initial_fragment: Optional[str] = None,
    advisor: Optional[PortalAdvisor] = None,
    configure_logs: bool = False,
) -> Portal:
    if configure_logs:
        configure_logging()
    settings = settings or get_settings()
    backend = gateway or RestBackendGateway(settings)
    state = AppState(notice_ttl_seconds=settings.notice_ttl_seconds)
    policy_kwargs = {"sleep": sleep} if sleep is not None else {}
    retry_policy = RetryPolicy(
        max_attempts=settings.profile_fetch_attempts,
        delay_seconds=settings.profile_fetch_delay_ms / 1000,
        **policy_kwargs,
    )
    directory = DirectoryCache(
        backend,
        state,
        sample_provider=sample_provider,
        use_samples=settings.use_sample_directory,
    )
    reconciler = ProfileReconciler(backend, state, directory, retry_policy=retry_policy)
    router = HashRouter(state, initial_fragment=initial_fragment)
    session = SessionController(
        backend,
        state,
        reconciler,
        directory,
        router,
        min_password_length=settings.min_password_length,
    )
    mutations = StatusMutationGateway(backend, state, directory, router)
    logger.debug("Portal wired against %s", settings.backend_url)
    return Portal(
        settings=settings,
        state=state,
        gateway=backend,
        directory=directory,
        reconciler=reconciler,
        router=router,
        session=session,
        mutations=mutations,
        advisor=advisor or PortalAdvisor(settings),
    )


__all__ = ["Portal", "create_portal"]
