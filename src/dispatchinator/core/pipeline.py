"""Standard command pipeline assembly.

CommandPipeline wires a router, the seven standard middleware and the
state they share (response cache, metrics registry) and owns every
background task: the cache sweeper thread, the rate-limit housekeeping job
and the activity-log worker pool. ``close()`` stops all of them.
"""

import time
from typing import Callable, Iterable, Optional

from apscheduler.schedulers.background import BackgroundScheduler

from ..cache import TTLCache
from ..config import PipelineConfig
from ..handlers import HelpHandler, MetricsHandler, PingHandler, StartHandler, StatsHandler
from ..logging import get_structured_logger
from ..metrics import MetricsRegistry
from ..middleware import (
    ActivityMiddleware,
    AuthMiddleware,
    CachingMiddleware,
    LoggingMiddleware,
    MetricsMiddleware,
    RateLimitMiddleware,
    ValidationMiddleware,
)
from .handler import CommandHandler
from .ports import ActivityStore, UserService
from .router import CommandRouter
from .types import Command, RequestContext, Response

log = get_structured_logger(__name__)


class CommandPipeline:
    """Router plus the standard middleware stack.

    Middleware order (outermost first): logging, metrics, validation,
    caching, auth, activity, rate limiting.

    Usage:
        with CommandPipeline(config, users=repo, activity=repo) as pipeline:
            pipeline.register_builtin_handlers()
            response = pipeline.dispatch(RequestContext.with_timeout(30), cmd)

    Args:
        config: Pipeline configuration
        users: User service collaborator
        activity: Activity persistence collaborator
        handlers: Handlers to register right away
        clock: Monotonic time source shared by the cache and rate limiter
        start_background: Start the cache sweeper and housekeeping scheduler
    """

    def __init__(
        self,
        config: PipelineConfig = None,
        users: UserService = None,
        activity: ActivityStore = None,
        handlers: Iterable[CommandHandler] = (),
        clock: Callable[[], float] = time.monotonic,
        start_background: bool = True,
    ):
        if users is None or activity is None:
            raise ValueError("CommandPipeline requires a user service and an activity store")

        self.config = config or PipelineConfig()
        self.users = users
        self.activity_store = activity
        self._closed = False

        self.cache = TTLCache(
            default_ttl=self.config.cache.default_ttl_seconds,
            sweep_interval=self.config.cache.sweep_interval_seconds,
            clock=clock,
            start_sweeper=start_background,
        )
        self.metrics = MetricsRegistry()
        self.router = CommandRouter()

        self.logging_mw = LoggingMiddleware()
        self.metrics_mw = MetricsMiddleware(self.metrics, slow_threshold=self.config.metrics.slow_threshold_seconds)
        self.validation_mw = ValidationMiddleware(max_length=self.config.validation.max_length)
        self.caching_mw = CachingMiddleware(
            self.cache,
            config=self.config.cache,
            cacheable_prefixes=self.config.cacheable_prefixes,
        )
        self.auth_mw = AuthMiddleware(users)
        self.activity_mw = ActivityMiddleware(activity, workers=self.config.activity_workers)
        self.ratelimit_mw = RateLimitMiddleware(
            max_requests=self.config.ratelimit.max_requests,
            window=self.config.ratelimit.window_seconds,
            clock=clock,
        )

        for middleware in (
            self.logging_mw,
            self.metrics_mw,
            self.validation_mw,
            self.caching_mw,
            self.auth_mw,
            self.activity_mw,
            self.ratelimit_mw,
        ):
            self.router.register_middleware(middleware)

        for handler in handlers:
            self.router.register_handler(handler)

        self.scheduler: Optional[BackgroundScheduler] = None
        if start_background:
            self._start_scheduler()

    def _start_scheduler(self) -> None:
        self.scheduler = BackgroundScheduler()
        self.scheduler.add_job(
            self._cleanup_rate_limits,
            "interval",
            seconds=self.config.ratelimit.cleanup_interval_seconds,
            id="ratelimit_cleanup",
        )
        self.scheduler.start()
        log.info(
            "Housekeeping scheduler started",
            ratelimit_cleanup_s=self.config.ratelimit.cleanup_interval_seconds,
        )

    def _cleanup_rate_limits(self) -> None:
        try:
            self.ratelimit_mw.cleanup()
        except Exception as e:
            log.warning("Rate limit cleanup failed", error=str(e))

    def register_handler(self, handler: CommandHandler) -> None:
        self.router.register_handler(handler)

    def register_builtin_handlers(self, welcome: str = None) -> None:
        """Register /start, /help, /ping, /metrics and /stats."""
        start = StartHandler(welcome) if welcome else StartHandler()
        for handler in (
            start,
            HelpHandler(self.router),
            PingHandler(),
            MetricsHandler(self.metrics, cache_stats=self.caching_mw.stats),
            StatsHandler(self.users, self.activity_store),
        ):
            self.router.register_handler(handler)

    def dispatch(self, ctx: RequestContext, cmd: Command) -> Response:
        return self.router.dispatch(ctx, cmd)

    def close(self) -> None:
        """Stop every background task. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True

        if self.scheduler is not None:
            self.scheduler.shutdown(wait=True)
            self.scheduler = None
        self.cache.close()
        self.activity_mw.close()
        log.info("Command pipeline closed")

    def __enter__(self) -> "CommandPipeline":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
