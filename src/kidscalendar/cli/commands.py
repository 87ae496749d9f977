# src/kidscalendar/cli/commands.py

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from pathlib import Path

from ..core.service import FamilyService
from ..errors import KidsCalendarError, TaskValidationError
from ..family.models import Child, GuardianRole, Reward, TimeFormat
from ..tasks import lifecycle
from ..tasks.recurrence import tasks_for_day
from ..tasks.task_api import build_task, parse_pasted_table, tasks_from_table
from ..tasks.task_models import Task, TaskStatus, now_ms
from ..tasks.timefmt import display_time

CommandEmitter = Callable[[str], None]
CommandHandler = Callable[
    [FamilyService, list[str], CommandEmitter | None], "str | Awaitable[str]"
]

logger = logging.getLogger(__name__)

_STATUS_MARK = {TaskStatus.PENDING: "[ ]", TaskStatus.ACTIVE: "[>]", TaskStatus.DONE: "[x]"}


class CommandRegistry:
    """Simple slash-command registry used by connectors (/help, /tasks, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        service: FamilyService,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        Handlers may be plain functions or coroutines.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            reply = handler(service, args, emit)
            if inspect.isawaitable(reply):
                reply = await reply
        except TaskValidationError as e:
            return "Rejected:\n" + "\n".join(f"  {issue}" for issue in e.issues)
        except KidsCalendarError as e:
            return f"Error: {e}"
        return reply

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- helpers ----


def _active(service: FamilyService) -> Child:
    child = service.state.active_child()
    if child is None:
        raise KidsCalendarError("No children yet. Use /addkid <name>.")
    return child


def _today_tasks(child: Child) -> list[Task]:
    return lifecycle.sort_by_schedule(tasks_for_day(child.tasks, datetime.now().date()))


def _pick(items: list, token: str, kind: str):
    """Resolve a 1-based list number or an id."""
    if token.isdigit():
        n = int(token)
        if 1 <= n <= len(items):
            return items[n - 1]
    for item in items:
        if item.id == token:
            return item
    raise KidsCalendarError(f"No {kind} {token}.")


def _fmt_task(i: int, task: Task, mode: str) -> str:
    line = f"{i:>2}. {_STATUS_MARK[task.status]} {display_time(task.scheduled_time, mode)} {task.emoji} {task.title}"
    if task.duration_minutes:
        line += f" ({task.duration_minutes} min)"
    if task.reward_points:
        line += f" +{task.reward_points}*"
    if task.status is TaskStatus.ACTIVE:
        line += f"  left {lifecycle.format_countdown(lifecycle.remaining_ms(task, now_ms()))}"
    return line


def _fmt_reward(i: int, reward: Reward) -> str:
    return f"{i:>2}. {reward.title} ({reward.type.value}) - {reward.cost}*"


# ---- commands ----


def cmd_help(service: FamilyService, args: list[str], emit: CommandEmitter | None = None) -> str:
    return registry.build_help()


def cmd_status(service: FamilyService, args: list[str], emit: CommandEmitter | None = None) -> str:
    state = service.state
    user = state.current_user
    prefs = state.preferences
    return (
        "Status:\n"
        f"  User: {user.name if user else '(not signed in)'}\n"
        f"  Family: {state.family_id or '-'}\n"
        f"  Sync: {'ONLINE' if service.online else 'LOCAL ONLY'}\n"
        f"  Children: {len(state.children)}\n"
        f"  Time format: {prefs.time_format.value}, language: {prefs.language.value}\n"
        f"  Stars on completion: {'ON' if service.credit_on_completion else 'OFF'}"
    )


def cmd_kids(service: FamilyService, args: list[str], emit: CommandEmitter | None = None) -> str:
    children = service.state.children
    if not children:
        return "No children yet. Use /addkid <name>."
    active = service.state.active_child()
    lines = ["Children:"]
    for i, child in enumerate(children, start=1):
        mark = "*" if active is not None and child.id == active.id else " "
        lines.append(f"{mark}{i:>2}. {child.name} - {child.star_balance} stars, {len(child.tasks)} tasks")
    return "\n".join(lines)


def cmd_addkid(service: FamilyService, args: list[str], emit: CommandEmitter | None = None) -> str:
    name = " ".join(args).strip()
    if not name:
        return "Usage: /addkid <name>"
    child = service.add_child(name)
    return f"Added {child.name}."


def cmd_switch(service: FamilyService, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /switch <number|id>"
    child = _pick(service.state.children, args[0], "child")
    service.switch_active_child(child.id)
    return f"Active child: {child.name}"


def cmd_tasks(service: FamilyService, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /tasks      -> today's tasks of the active child
    /tasks all  -> every task, whatever its recurrence
    """
    child = _active(service)
    mode = service.state.preferences.time_format.value
    show_all = bool(args) and args[0].lower() == "all"
    tasks = lifecycle.sort_by_schedule(child.tasks) if show_all else _today_tasks(child)
    if not tasks:
        return f"No tasks for {child.name}."

    lines = [f"Tasks for {child.name}:"]
    lines.extend(_fmt_task(i, t, mode) for i, t in enumerate(tasks, start=1))
    now_task = lifecycle.current_task(tasks, datetime.now())
    if now_task is not None:
        lines.append(f"Now: {now_task.title}")
    return "\n".join(lines)


def cmd_addtask(service: FamilyService, args: list[str], emit: CommandEmitter | None = None) -> str:
    """/addtask <time> <minutes> <title...>  e.g. /addtask 07:30AM 20 Brush teeth"""
    if len(args) < 3:
        return "Usage: /addtask <time> <minutes> <title...>"
    child = _active(service)
    task = build_task(title=" ".join(args[2:]), scheduled_time=args[0], duration=args[1])
    service.add_task(child.id, task)
    return f"Added '{task.title}' at {display_time(task.scheduled_time, service.state.preferences.time_format.value)}."


def cmd_import(service: FamilyService, args: list[str], emit: CommandEmitter | None = None) -> str:
    """/import <file.tsv>: columns time, title, description, duration (tab separated)."""
    if not args:
        return "Usage: /import <file.tsv>"
    child = _active(service)
    path = Path(" ".join(args)).expanduser()
    try:
        text = path.read_text("utf-8")
    except OSError as e:
        return f"Cannot read {path}: {e}"
    tasks = tasks_from_table(parse_pasted_table(text))
    if not tasks:
        return "Nothing to import."
    service.add_tasks(child.id, tasks)
    return f"Imported {len(tasks)} tasks for {child.name}."


def _task_action(service: FamilyService, args: list[str], verb: str) -> tuple[Child, Task] | str:
    if not args:
        return f"Usage: /{verb} <number|id>"
    child = _active(service)
    return child, _pick(_today_tasks(child) or child.tasks, args[0], "task")


def cmd_start(service: FamilyService, args: list[str], emit: CommandEmitter | None = None) -> str:
    picked = _task_action(service, args, "start")
    if isinstance(picked, str):
        return picked
    child, task = picked
    service.start_task(child.id, task.id)
    if task.duration_minutes:
        return f"Started '{task.title}' ({task.duration_minutes} min)."
    return f"Started '{task.title}'."


def cmd_done(service: FamilyService, args: list[str], emit: CommandEmitter | None = None) -> str:
    picked = _task_action(service, args, "done")
    if isinstance(picked, str):
        return picked
    child, task = picked
    service.complete_task(child.id, task.id)
    return f"Done: '{task.title}'. {child.name} has {child.star_balance} stars."


def cmd_reset(service: FamilyService, args: list[str], emit: CommandEmitter | None = None) -> str:
    picked = _task_action(service, args, "reset")
    if isinstance(picked, str):
        return picked
    child, task = picked
    service.reset_task(child.id, task.id)
    return f"Reset '{task.title}' to pending."


def cmd_redeem(service: FamilyService, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /redeem               -> list rewards of the active child
    /redeem <n> [note...] -> spend stars on reward n
    """
    child = _active(service)
    if not args:
        if not child.rewards:
            return f"No rewards for {child.name}."
        lines = [f"Rewards ({child.name} has {child.star_balance} stars):"]
        lines.extend(_fmt_reward(i, r) for i, r in enumerate(child.rewards, start=1))
        return "\n".join(lines)

    reward = _pick(child.rewards, args[0], "reward")
    record = service.redeem(child.id, reward.id, note=" ".join(args[1:]) or None)
    return f"Redeemed '{record.reward_title}' for {record.cost} stars. {child.name} has {child.star_balance} left."


def cmd_history(service: FamilyService, args: list[str], emit: CommandEmitter | None = None) -> str:
    child = _active(service)
    if not child.redemption_history:
        return f"No redemptions for {child.name}."
    lines = [f"Redemptions for {child.name}:"]
    for rec in child.redemption_history:
        when = datetime.fromtimestamp(rec.timestamp_ms / 1000).astimezone().strftime("%Y-%m-%d %H:%M")
        note = f" - {rec.note}" if rec.note else ""
        lines.append(f"  {when} {rec.reward_title} (-{rec.cost}){note}")
    return "\n".join(lines)


async def cmd_sync(service: FamilyService, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not service.online:
        return "Not connected to a family; changes stay on this device."
    if emit:
        emit("[SYNC] Uploading local changes...")
    results = await service.sync_now()
    failed = [r for r in results if not r.fully_ok]
    skipped = [r for r in results if r.skipped]
    return f"Sync done: {len(results) - len(failed) - len(skipped)} ok, {len(skipped)} skipped, {len(failed)} failed."


def cmd_format(service: FamilyService, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args or args[0].lower() not in (TimeFormat.H12.value, TimeFormat.H24.value):
        return f"Time format is {service.state.preferences.time_format.value}. Use /format 12h or /format 24h."
    prefs = service.set_preference("time_format", args[0].lower())
    return f"Time format set to {prefs.time_format.value}."


async def cmd_family(service: FamilyService, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /family new <name>   -> create a family and connect to it
    /family join <code>  -> join a family with an invitation code
    """
    if len(args) < 2 or args[0].lower() not in ("new", "join"):
        return "Usage: /family new <name> | /family join <code>"
    if args[0].lower() == "new":
        family_id = await service.create_family(" ".join(args[1:]))
        return f"Family created: {family_id}."
    family_id = await service.join_family(args[1])
    return f"Joined family {family_id}."


async def cmd_invite(service: FamilyService, args: list[str], emit: CommandEmitter | None = None) -> str:
    """/invite [Admin|Co-Parent|Guardian]: one-time code, valid for 24 hours."""
    role = GuardianRole.CO_PARENT
    if args:
        wanted = " ".join(args).strip().lower()
        matches = [r for r in GuardianRole if r.value.lower() == wanted]
        if not matches:
            return "Usage: /invite [" + "|".join(r.value for r in GuardianRole) + "]"
        role = matches[0]
    invitation = await service.invite(role)
    return f"Invitation code for a {invitation.role.value}: {invitation.code} (expires {invitation.expires_at})."


async def cmd_logout(service: FamilyService, args: list[str], emit: CommandEmitter | None = None) -> str:
    await service.logout()
    return "Logged out. Local data on this device was cleared."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show session, sync mode and preferences.")
registry.register("kids", cmd_kids, help_text="List children and star balances.")
registry.register("addkid", cmd_addkid, help_text="Add a child: /addkid <name>.")
registry.register("switch", cmd_switch, help_text="Switch active child: /switch <number>.")
registry.register("tasks", cmd_tasks, help_text="Today's tasks of the active child: /tasks [all].")
registry.register("addtask", cmd_addtask, help_text="Add a task: /addtask <time> <minutes> <title>.")
registry.register("import", cmd_import, help_text="Import tasks from a tab separated file: /import <file>.")
registry.register("start", cmd_start, help_text="Start a task: /start <number>.")
registry.register("done", cmd_done, help_text="Complete a task: /done <number>.")
registry.register("reset", cmd_reset, help_text="Put a task back to pending: /reset <number>.")
registry.register("redeem", cmd_redeem, help_text="List rewards or redeem one: /redeem [number] [note].")
registry.register("history", cmd_history, help_text="Show the redemption history of the active child.")
registry.register("sync", cmd_sync, help_text="Push local data and re-fetch from the server.")
registry.register("format", cmd_format, help_text="Time format: /format 12h | /format 24h.")
registry.register("family", cmd_family, help_text="Create or join a family: /family new <name> | /family join <code>.")
registry.register("invite", cmd_invite, help_text="Create an invitation code: /invite [role].")
registry.register("logout", cmd_logout, help_text="Sign out and clear local data.")
