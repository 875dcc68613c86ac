"""提醒生命周期引擎

状态机: pending -> sending -> sent | failed，单次投递内单调，不会自动回到 pending。
引擎负责两类写操作:
1. 交互式的 新建/查看/编辑/删除，由意图识别的结果驱动，结果通过 Messenger 告知用户；
2. 到期提醒的投递扫描，由外部定时触发，结果只体现在 SweepSummary 计数中。

存储与通道均由构造函数注入，每次外部调用都有超时，超时按失败处理。
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Set, TypeVar

from remindbot.channels.base import Messenger
from remindbot.config.messages import Messages, get_messages
from remindbot.core.disambiguation import MatchOutcome, MatchResult, find_targets, format_candidates
from remindbot.datamodel import (
    CreateReminder,
    DeleteReminder,
    EditReminder,
    Intent,
    ListReminders,
    Reminder,
    ReminderPatch,
    ReminderStatus,
    UnknownIntent,
)
from remindbot.events import Bus, E
from remindbot.logger import logger
from remindbot.storage.base import ReminderStore
from remindbot.timeparse import ParseFailure, resolve_time
from remindbot.utils import ensure_utc, now_utc

__all__ = ["OutcomeKind", "IntentOutcome", "DeliveryAttempt", "SweepSummary", "ReminderEngine"]

T = TypeVar("T")


class OutcomeKind(str, Enum):
    CREATED = "created"
    MISSING_FIELDS = "missing_fields"
    TIME_UNPARSEABLE = "time_unparseable"
    SAVE_FAILED = "save_failed"
    LISTED = "listed"
    LIST_EMPTY = "list_empty"
    LIST_FAILED = "list_failed"
    TARGET_MISSING = "target_missing"
    UPDATES_MISSING = "updates_missing"
    NOT_FOUND = "not_found"
    AMBIGUOUS = "ambiguous"
    LOOKUP_FAILED = "lookup_failed"
    EDITED = "edited"
    EDIT_CANCELLED = "edit_cancelled"
    EDIT_FAILED = "edit_failed"
    DELETED = "deleted"
    DELETE_FAILED = "delete_failed"
    UNKNOWN = "unknown"
    CLASSIFIER_ERROR = "classifier_error"
    UNEXPECTED_ERROR = "unexpected_error"


@dataclass
class IntentOutcome:
    kind: OutcomeKind
    text: str
    reminder: Optional[Reminder] = None
    candidates: List[Reminder] = field(default_factory=list)
    delivered: bool = False


@dataclass
class DeliveryAttempt:
    reminder_id: int
    final_status: Optional[ReminderStatus] = None
    delivery_error: bool = False
    processing_error: bool = False
    skipped: bool = False


@dataclass
class SweepSummary:
    total: int = 0
    processed: int = 0  # 投递成功且最终状态写入成功
    errored: int = 0  # 投递失败或状态写入失败
    delivery_errors: int = 0
    processing_errors: int = 0
    skipped: int = 0  # 已被其他扫描认领
    query_error: Optional[str] = None

    def add(self, attempt: DeliveryAttempt) -> None:
        if attempt.skipped:
            self.skipped += 1
            return
        if attempt.delivery_error:
            self.delivery_errors += 1
        if attempt.processing_error:
            self.processing_errors += 1
        if attempt.delivery_error or attempt.processing_error:
            self.errored += 1
        else:
            self.processed += 1

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ReminderEngine:
    def __init__(
        self,
        store: ReminderStore,
        messenger: Messenger,
        *,
        timezone: str = "UTC",
        locale: str = "en",
        store_timeout: Optional[float] = 10.0,
        messenger_timeout: Optional[float] = 15.0,
        sweep_concurrency: int = 1,
        clock: Callable[[], datetime] = now_utc,
        events: Optional[Bus] = None,
    ) -> None:
        self.store = store
        self.messenger = messenger
        self.timezone = timezone
        self.messages: Messages = get_messages(locale)
        self.store_timeout = store_timeout
        self.messenger_timeout = messenger_timeout
        self.sweep_concurrency = max(1, sweep_concurrency)
        self.clock = clock
        self.events = events
        self._sweep_lock = asyncio.Lock()
        self._cleanup_tasks: Set[asyncio.Task] = set()

    # ----------------- 基础设施 ----------------
    def _emit(self, event: str, *args: Any) -> None:
        if self.events is not None:
            self.events.emit(event, *args)

    def _now(self, now: Optional[datetime]) -> datetime:
        return ensure_utc(now) if now is not None else ensure_utc(self.clock())

    async def _store_call(self, awaitable: Awaitable[T]) -> T:
        return await asyncio.wait_for(awaitable, self.store_timeout)

    async def notify(self, user_id: str, text: str) -> bool:
        """向用户发送文字，任何异常或超时都视为发送失败"""
        try:
            delivered = bool(await asyncio.wait_for(self.messenger.deliver(user_id, text), self.messenger_timeout))
        except asyncio.TimeoutError:
            logger.warning(f"向用户 {user_id} 发送消息超时: timeout={self.messenger_timeout}s")
            return False
        except Exception as e:
            logger.exception(f"向用户 {user_id} 发送消息异常: {e}")
            return False

        if delivered:
            self._emit(E.IO_MESSAGE_SENT, user_id)
        else:
            logger.warning(f"向用户 {user_id} 发送消息失败")
        return delivered

    def _outcome(self, kind: OutcomeKind, key: str, **kwargs: Any) -> IntentOutcome:
        return IntentOutcome(kind=kind, text=self.messages.text(key, **kwargs))

    # ----------------- 意图分发 ----------------
    async def handle_intent(self, user_id: str, intent: Intent, now: Optional[datetime] = None) -> IntentOutcome:
        """执行意图对应的流程，并把结果文案发给用户"""
        try:
            outcome = await self.execute(user_id, intent, now)
        except Exception as e:
            logger.exception(f"处理用户 {user_id} 的意图时发生未预期的异常: intent={intent!r}, error={e}")
            outcome = self._outcome(OutcomeKind.UNEXPECTED_ERROR, "unexpected_error")

        outcome.delivered = await self.notify(user_id, outcome.text)
        return outcome

    async def execute(self, user_id: str, intent: Intent, now: Optional[datetime] = None) -> IntentOutcome:
        """执行意图对应的流程，只返回结果，不发送消息"""
        now = self._now(now)
        self._emit(E.INTENT_CLASSIFIED, type(intent).__name__, user_id)

        if isinstance(intent, CreateReminder):
            return await self.create_reminder(user_id, intent, now)
        if isinstance(intent, ListReminders):
            return await self.list_reminders(user_id)
        if isinstance(intent, EditReminder):
            return await self.edit_reminder(user_id, intent, now)
        if isinstance(intent, DeleteReminder):
            return await self.delete_reminder(user_id, intent)
        if isinstance(intent, UnknownIntent):
            return self.explain_unknown(intent)

        logger.error(f"未知的意图类型: {intent!r}")
        return self._outcome(OutcomeKind.UNEXPECTED_ERROR, "unexpected_error")

    # ----------------- 新建 ----------------
    async def create_reminder(self, user_id: str, intent: CreateReminder, now: datetime) -> IntentOutcome:
        if not intent.task or not intent.time:
            return self._outcome(OutcomeKind.MISSING_FIELDS, "create_missing_fields")

        resolved = resolve_time(intent.time, now, self.timezone)
        if isinstance(resolved, ParseFailure):
            logger.info(f"用户 {user_id} 的时间表达无法解析: {intent.time!r} ({resolved.reason})")
            return self._outcome(OutcomeKind.TIME_UNPARSEABLE, "create_bad_time", time=intent.time)

        # shield 保证超时后写入仍可完成，并由回调撤销，避免留下用户不知道的记录
        create_task = asyncio.ensure_future(self.store.create(user_id, intent.task, resolved))
        try:
            reminder = await asyncio.wait_for(asyncio.shield(create_task), self.store_timeout)
        except asyncio.TimeoutError:
            logger.error(f"保存提醒超时: user_id={user_id}, timeout={self.store_timeout}s")
            create_task.add_done_callback(self._discard_late_create)
            return self._outcome(OutcomeKind.SAVE_FAILED, "create_save_failed")
        except Exception as e:
            logger.exception(f"保存提醒失败: user_id={user_id}, error={e}")
            return self._outcome(OutcomeKind.SAVE_FAILED, "create_save_failed")

        logger.info(f"已创建提醒: reminder_id={reminder.reminder_id}, user_id={user_id}, reminder_time={reminder.reminder_time}")
        self._emit(E.REMINDER_CREATED, reminder)
        outcome = self._outcome(
            OutcomeKind.CREATED,
            "create_ok",
            task=reminder.task_description,
            when=self.messages.format_long(reminder.reminder_time, self.timezone),
        )
        outcome.reminder = reminder
        return outcome

    def _discard_late_create(self, task: asyncio.Future) -> None:
        if task.cancelled() or task.exception() is not None:
            return
        reminder: Reminder = task.result()
        logger.warning(f"超时后写入的提醒将被撤销: reminder_id={reminder.reminder_id}")
        cleanup = asyncio.ensure_future(self.store.delete(reminder.reminder_id))
        self._cleanup_tasks.add(cleanup)
        cleanup.add_done_callback(self._cleanup_done)

    def _cleanup_done(self, task: asyncio.Future) -> None:
        self._cleanup_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.opt(exception=task.exception()).error("撤销超时写入的提醒失败")

    # ----------------- 查看 ----------------
    async def list_reminders(self, user_id: str) -> IntentOutcome:
        try:
            reminders = await self._store_call(self.store.list_pending_for_user(user_id))
        except Exception as e:
            logger.opt(exception=e).error(f"读取用户 {user_id} 的提醒列表失败: {e!r}")
            return self._outcome(OutcomeKind.LIST_FAILED, "list_failed")

        if not reminders:
            return self._outcome(OutcomeKind.LIST_EMPTY, "list_empty")

        reminders = sorted(reminders, key=lambda r: (r.reminder_time, r.reminder_id))
        text = self.messages.text("list_header") + "\n" + format_candidates(reminders, self.messages, self.timezone)
        return IntentOutcome(kind=OutcomeKind.LISTED, text=text, candidates=reminders)

    # ----------------- 编辑 / 删除 ----------------
    def _unresolved_match(self, match: MatchResult, target: str, action: str) -> Optional[IntentOutcome]:
        """匹配结果不是唯一时返回对应的结果，唯一时返回 None"""
        outcome = match.outcome
        if outcome is MatchOutcome.UNIQUE:
            return None
        if outcome is MatchOutcome.QUERY_FAILED:
            return self._outcome(OutcomeKind.LOOKUP_FAILED, "lookup_failed")
        if outcome is MatchOutcome.NOT_FOUND:
            return self._outcome(OutcomeKind.NOT_FOUND, f"{action}_not_found", target=target)

        text = "\n".join([
            self.messages.text("ambiguous_header", target=target),
            format_candidates(match.candidates, self.messages, self.timezone),
            "",
            self.messages.text(f"{action}_ambiguous_footer"),
        ])
        return IntentOutcome(kind=OutcomeKind.AMBIGUOUS, text=text, candidates=list(match.candidates))

    async def edit_reminder(self, user_id: str, intent: EditReminder, now: datetime) -> IntentOutcome:
        if not intent.target:
            return self._outcome(OutcomeKind.TARGET_MISSING, "edit_target_missing")
        if not intent.new_task and not intent.new_time:
            return self._outcome(OutcomeKind.UPDATES_MISSING, "edit_updates_missing")

        match = await find_targets(self.store, user_id, intent.target, self.store_timeout)
        unresolved = self._unresolved_match(match, intent.target, "edit")
        if unresolved is not None:
            return unresolved
        target = match.candidates[0]

        new_time: Optional[datetime] = None
        if intent.new_time:
            resolved = resolve_time(intent.new_time, now, self.timezone)
            if isinstance(resolved, ParseFailure):
                logger.info(f"编辑已取消，新时间无法解析: {intent.new_time!r} ({resolved.reason})")
                return self._outcome(OutcomeKind.EDIT_CANCELLED, "edit_bad_time", time=intent.new_time)
            new_time = resolved

        patch = ReminderPatch(task_description=intent.new_task or None, reminder_time=new_time)
        try:
            updated = await self._store_call(self.store.patch(target.reminder_id, patch))
        except Exception as e:
            logger.opt(exception=e).error(f"更新提醒失败: reminder_id={target.reminder_id}, error={e!r}")
            return self._outcome(OutcomeKind.EDIT_FAILED, "edit_failed")

        if not updated:
            logger.warning(f"待更新的提醒已不存在: reminder_id={target.reminder_id}")
            return self._outcome(OutcomeKind.NOT_FOUND, "edit_not_found", target=intent.target)

        result = replace(
            target,
            task_description=patch.task_description or target.task_description,
            reminder_time=patch.reminder_time or target.reminder_time,
        )
        logger.info(f"已更新提醒: reminder_id={result.reminder_id}, patch={patch}")
        self._emit(E.REMINDER_UPDATED, result)
        outcome = self._outcome(
            OutcomeKind.EDITED,
            "edit_ok",
            task=result.task_description,
            when=self.messages.format_long(result.reminder_time, self.timezone),
        )
        outcome.reminder = result
        return outcome

    async def delete_reminder(self, user_id: str, intent: DeleteReminder) -> IntentOutcome:
        if not intent.target:
            return self._outcome(OutcomeKind.TARGET_MISSING, "delete_target_missing")

        match = await find_targets(self.store, user_id, intent.target, self.store_timeout)
        unresolved = self._unresolved_match(match, intent.target, "delete")
        if unresolved is not None:
            return unresolved
        target = match.candidates[0]

        try:
            deleted = await self._store_call(self.store.delete(target.reminder_id))
        except Exception as e:
            logger.opt(exception=e).error(f"删除提醒失败: reminder_id={target.reminder_id}, error={e!r}")
            return self._outcome(OutcomeKind.DELETE_FAILED, "delete_failed")

        if not deleted:
            logger.warning(f"待删除的提醒已不存在: reminder_id={target.reminder_id}")
            return self._outcome(OutcomeKind.NOT_FOUND, "delete_not_found", target=intent.target)

        logger.info(f"已删除提醒: reminder_id={target.reminder_id}, user_id={user_id}")
        self._emit(E.REMINDER_DELETED, target)
        outcome = self._outcome(
            OutcomeKind.DELETED,
            "delete_ok",
            task=target.task_description or self.messages.text("no_description"),
        )
        outcome.reminder = target
        return outcome

    # ----------------- 无法识别 ----------------
    def explain_unknown(self, intent: UnknownIntent) -> IntentOutcome:
        if intent.error:
            return self._outcome(OutcomeKind.CLASSIFIER_ERROR, "unknown_error", error=intent.error)
        return self._outcome(OutcomeKind.UNKNOWN, "unknown_help")

    # ----------------- 到期投递 ----------------
    async def run_sweep(self, now: Optional[datetime] = None) -> SweepSummary:
        """投递所有到期的 pending 提醒

        可重复调用。单条提醒的失败只计入计数，不会中断本次扫描；
        到期查询本身失败时返回带 query_error 的结果。
        """
        async with self._sweep_lock:
            now = self._now(now)
            summary = SweepSummary()
            try:
                due = await self._store_call(self.store.list_due(now))
            except Exception as e:
                summary.query_error = "timeout" if isinstance(e, asyncio.TimeoutError) else (str(e) or e.__class__.__name__)
                logger.opt(exception=e).error(f"查询到期提醒失败: {summary.query_error}")
                self._emit(E.SWEEP_FINISHED, summary)
                return summary

            summary.total = len(due)
            if due:
                logger.info(f"发现 {len(due)} 条到期提醒")

            if self.sweep_concurrency > 1:
                semaphore = asyncio.Semaphore(self.sweep_concurrency)

                async def bounded(reminder: Reminder) -> DeliveryAttempt:
                    async with semaphore:
                        return await self._deliver_isolated(reminder)

                attempts = await asyncio.gather(*(bounded(r) for r in due))
            else:
                attempts = [await self._deliver_isolated(r) for r in due]

            for attempt in attempts:
                summary.add(attempt)

            if summary.total:
                logger.info(
                    f"投递扫描完成: total={summary.total}, processed={summary.processed}, errored={summary.errored}, "
                    f"delivery_errors={summary.delivery_errors}, processing_errors={summary.processing_errors}, "
                    f"skipped={summary.skipped}"
                )
            self._emit(E.SWEEP_FINISHED, summary)
            return summary

    async def _deliver_isolated(self, reminder: Reminder) -> DeliveryAttempt:
        try:
            return await self._deliver_one(reminder)
        except Exception as e:
            logger.exception(f"处理提醒时发生未预期的异常: reminder_id={reminder.reminder_id}, error={e}")
            return DeliveryAttempt(reminder_id=reminder.reminder_id, processing_error=True)

    async def _deliver_one(self, reminder: Reminder) -> DeliveryAttempt:
        attempt = DeliveryAttempt(reminder_id=reminder.reminder_id)

        # 1. 认领: pending -> sending。写入失败时照常发送，宁可重复也不漏发
        try:
            claimed = await self._store_call(self.store.claim_for_sending(reminder.reminder_id))
        except Exception as e:
            logger.opt(exception=e).warning(f"标记 sending 失败，继续发送: reminder_id={reminder.reminder_id}, error={e!r}")
            claimed = True
        if not claimed:
            logger.info(f"提醒已被其他扫描认领，跳过: reminder_id={reminder.reminder_id}")
            attempt.skipped = True
            return attempt

        # 2. 投递
        text = self.messages.text("notification", task=reminder.task_description)
        delivered = await self.notify(reminder.user_id, text)
        attempt.final_status = ReminderStatus.SENT if delivered else ReminderStatus.FAILED
        attempt.delivery_error = not delivered

        # 3. 最终状态，无论认领是否成功都要写
        try:
            written = await self._store_call(self.store.update_status(reminder.reminder_id, attempt.final_status))
        except Exception as e:
            logger.opt(exception=e).error(
                f"写入最终状态失败: reminder_id={reminder.reminder_id}, status={attempt.final_status.value}, error={e!r}"
            )
            attempt.processing_error = True
        else:
            if not written:
                logger.warning(f"写入最终状态时提醒已不存在: reminder_id={reminder.reminder_id}")
                attempt.processing_error = True

        if delivered:
            logger.info(f"提醒已发送: reminder_id={reminder.reminder_id}, user_id={reminder.user_id}")
            self._emit(E.REMINDER_SENT, reminder)
        else:
            logger.warning(f"提醒发送失败: reminder_id={reminder.reminder_id}, user_id={reminder.user_id}")
            self._emit(E.REMINDER_FAILED, reminder)
        return attempt
