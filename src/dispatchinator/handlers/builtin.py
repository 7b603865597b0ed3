"""Built-in command handlers."""

import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol

from ..core.handler import CommandHandler
from ..core.ports import ActivityStore, UserService
from ..core.types import Command, FormatHint, HandlerView, RequestContext, Response
from ..errors import HandlerError
from ..logging import get_structured_logger
from ..metrics import MetricsRegistry

log = get_structured_logger(__name__)

DEFAULT_WELCOME = "🤖 Hi! I'm a command bot."


class HandlerCatalog(Protocol):
    def enumerate(self) -> List[HandlerView]:
        ...


def format_uptime(seconds: float) -> str:
    """Format a duration as "2d 3h 4m", "3h 4m 5s", "4m 5s" or "5s"."""
    seconds = int(seconds)
    days, rem = divmod(seconds, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, secs = divmod(rem, 60)
    if days:
        return f"{days}d {hours}h {minutes}m"
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


class StartHandler(CommandHandler):
    prefixes = frozenset({"/start"})

    def __init__(self, welcome: str = DEFAULT_WELCOME):
        self.welcome = welcome

    def invoke(self, ctx: RequestContext, cmd: Command) -> Response:
        message = self.welcome
        user = ctx.user
        if user is not None and user.first_name:
            message += f"\n\n👋 Hello, {user.first_name}!"
        message += "\n\n/help - list all commands"

        log.info("Start command processed", user_id=cmd.user.id)
        return Response(text=message)

    def description(self) -> str:
        return "Welcome message"

    def usage(self) -> str:
        return "/start"


class HelpHandler(CommandHandler):
    """Lists the registered commands.

    Receives only a read-only catalog (the router's ``enumerate()``), never
    the router itself.
    """

    prefixes = frozenset({"/help"})

    def __init__(self, catalog: HandlerCatalog, static_help: str = ""):
        self.catalog = catalog
        self.static_help = static_help

    def invoke(self, ctx: RequestContext, cmd: Command) -> Response:
        text = self.static_help or self._dynamic_help()
        log.info("Help command processed", user_id=cmd.user.id)
        return Response(text=text)

    def _dynamic_help(self) -> str:
        views = self.catalog.enumerate()
        if not views:
            return "No commands are available"

        lines = ["🤖 Available commands:", ""]
        for view in views:
            usage = view.usage or view.primary
            lines.append(f"{usage} - {view.description}" if view.description else usage)
        return "\n".join(lines)

    def description(self) -> str:
        return "Show this help message"

    def usage(self) -> str:
        return "/help"


class PingHandler(CommandHandler):
    prefixes = frozenset({"/ping"})

    def __init__(self, started: float = None, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.started = clock() if started is None else started

    def invoke(self, ctx: RequestContext, cmd: Command) -> Response:
        uptime = self._clock() - self.started
        name = ctx.user.display_name if ctx.user is not None else cmd.user.display_name
        text = (
            "🏓 **Pong!**\n\n"
            "✅ Bot is running\n"
            f"⏱ Uptime: {format_uptime(uptime)}\n"
            f"🕐 Server time: {datetime.now():%Y-%m-%d %H:%M:%S}\n"
            f"👤 User: {name}"
        )
        log.info("Ping command processed", user_id=cmd.user.id, uptime_s=int(uptime))
        return Response(text=text, format_hint=FormatHint.MARKDOWN)

    def description(self) -> str:
        return "Health check and uptime"

    def usage(self) -> str:
        return "/ping"


class MetricsHandler(CommandHandler):
    prefixes = frozenset({"/metrics"})

    def __init__(self, registry: MetricsRegistry, cache_stats: Optional[Callable[[], Dict[str, Any]]] = None):
        self.registry = registry
        self.cache_stats = cache_stats

    def invoke(self, ctx: RequestContext, cmd: Command) -> Response:
        snap = self.registry.snapshot()
        lines = [
            "📈 **Bot Performance Metrics**",
            "",
            "🖥️ **System:**",
            f"   • Uptime: {format_uptime(snap.uptime_s)}",
            "",
            "📊 **Requests:**",
            f"   • Total: {snap.total}",
            f"   • Successful: {snap.successful}",
            f"   • Failed: {snap.failed}",
            f"   • Success Rate: {snap.success_rate:.1f}%",
            f"   • Req/min: {snap.requests_per_minute:.1f}",
        ]

        top = snap.top(5)
        if top:
            lines += ["", "🔥 **Popular Commands:**"]
            lines += [f"   {i}. {s.prefix}: {s.count}" for i, s in enumerate(top, 1)]

        if self.cache_stats is not None:
            stats = self.cache_stats()
            lines += [
                "",
                "💾 **Cache:**",
                f"   • Size: {stats.get('cache_size', 0)} items",
                f"   • TTL: {int(stats.get('default_ttl_seconds', 0) // 60)} minutes",
                f"   • Cached Commands: {stats.get('cacheable_prefixes', 0)}",
            ]

        if snap.per_command:
            total_ns = sum(s.total_ns for s in snap.per_command.values())
            count = sum(s.count for s in snap.per_command.values())
            lines += ["", "⚡ **Performance:**", f"   • Avg Response: {total_ns / count / 1e6:.0f}ms"]
            slowest = snap.slowest()
            if slowest is not None:
                lines.append(f"   • Slowest: {slowest.prefix} ({slowest.average_ms:.0f}ms)")

        log.info("Metrics command processed", user_id=cmd.user.id)
        return Response(text="\n".join(lines), format_hint=FormatHint.MARKDOWN)

    def description(self) -> str:
        return "Bot performance metrics"

    def usage(self) -> str:
        return "/metrics"


class StatsHandler(CommandHandler):
    prefixes = frozenset({"/stats"})

    def __init__(self, users: UserService, activity: ActivityStore):
        self.users = users
        self.activity = activity

    def invoke(self, ctx: RequestContext, cmd: Command) -> Response:
        try:
            user_stats = self.users.stats()
        except Exception as e:
            raise HandlerError(
                f"failed to load user stats: {e}",
                response=Response(text="❌ Could not load statistics"),
            ) from e

        try:
            daily = self.activity.daily()
        except Exception as e:
            log.error("Failed to get daily stats", error=str(e))
            daily = {}

        try:
            popular = self.activity.popular(5)
        except Exception as e:
            log.error("Failed to get popular commands", error=str(e))
            popular = {}

        lines = [
            "📊 **Bot Statistics**",
            "",
            "👥 **Users:**",
            f"   • Total: {user_stats.get('total', 0)}",
            f"   • Active: {user_stats.get('active', 0)}",
            f"   • New today: {daily.get('new_users_today', user_stats.get('new_today', 0))}",
            f"   • Active today: {daily.get('active_users_today', user_stats.get('active_today', 0))}",
            "",
            "📈 **Activity:**",
            f"   • Commands today: {daily.get('activities_today', 0)}",
        ]
        if popular:
            lines += ["", "🔥 **Popular commands:**"]
            lines += [f"   • {command}: {count}" for command, count in popular.items()]

        log.info("Stats command processed", user_id=cmd.user.id, total_users=user_stats.get("total", 0))
        return Response(text="\n".join(lines), format_hint=FormatHint.MARKDOWN)

    def description(self) -> str:
        return "User and activity statistics"

    def usage(self) -> str:
        return "/stats"
